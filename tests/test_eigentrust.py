"""Tests for the EigenTrust propagation solver."""

import math

import pytest

from app.graph.eigentrust import EigenTrustEngine, SolverConfig
from app.graph.models import PropagationResult

from tests.conftest import A, B, C, D, addr, edge


def _cycle():
    return [edge(A, B), edge(B, C), edge(C, A)]


def _ring(n):
    nodes = [addr(100 + i) for i in range(n)]
    return [edge(nodes[i], nodes[(i + 1) % n]) for i in range(n)]


class TestMassConservation:

    @pytest.mark.parametrize("edges", [
        _cycle(),
        [edge(A, D), edge(B, D), edge(C, D), edge(D, A)],
        [edge(A, B, 0.9), edge(A, C, 0.1)],
        [edge(A, B, 1.0), edge(A, C, -1.0)],
        _ring(20),
    ])
    def test_scores_sum_to_one(self, edges):
        result = EigenTrustEngine().compute(edges)
        assert abs(sum(result.scores.values()) - 1.0) < 1e-6

    def test_sums_to_one_with_pre_trust(self):
        result = EigenTrustEngine().compute(_cycle(), pre_trusted={A})
        assert abs(sum(result.scores.values()) - 1.0) < 1e-6


class TestEmptyGraph:

    def test_empty_edge_list(self):
        result = EigenTrustEngine().compute([])
        assert result == PropagationResult(scores={}, iterations=0, converged=True)


class TestPropagation:

    def test_equal_cycle_scores_are_equal(self):
        result = EigenTrustEngine().compute(_cycle())
        scores = list(result.scores.values())
        assert max(scores) - min(scores) < 0.05
        assert result.converged

    def test_pre_trusted_node_gains(self):
        engine = EigenTrustEngine()
        plain = engine.compute(_cycle())
        anchored = engine.compute(_cycle(), pre_trusted={A})
        assert engine.score_for(anchored, A) > engine.score_for(plain, A)

    def test_pre_trusted_outside_graph_falls_back_to_uniform(self):
        engine = EigenTrustEngine()
        plain = engine.compute(_cycle())
        ghost = engine.compute(_cycle(), pre_trusted={addr(999)})
        assert ghost.scores == pytest.approx(plain.scores)

    def test_common_target_beats_its_trustors(self):
        engine = EigenTrustEngine()
        result = engine.compute([edge(A, D), edge(B, D), edge(C, D), edge(D, A)])
        assert engine.score_for(result, D) > engine.score_for(result, A)
        assert engine.score_for(result, D) > engine.score_for(result, B)
        assert engine.score_for(result, D) > engine.score_for(result, C)

    def test_common_target_beats_reciprocated_trustors(self):
        engine = EigenTrustEngine()
        star = [edge(A, D), edge(B, D), edge(C, D), edge(D, A), edge(D, B), edge(D, C)]
        result = engine.compute(star)
        for trustor in (A, B, C):
            assert engine.score_for(result, D) > engine.score_for(result, trustor)

    def test_weight_split_favors_heavier_edge(self):
        engine = EigenTrustEngine()
        result = engine.compute([edge(A, B, 0.9), edge(A, C, 0.1)])
        assert engine.score_for(result, B) > engine.score_for(result, C)

    def test_negative_edge_carries_no_mass(self):
        engine = EigenTrustEngine()
        negative = engine.compute([edge(A, B, 1.0), edge(A, C, -1.0)])
        absent = engine.compute([edge(A, B, 1.0), edge(A, C, 0.0)])
        score = engine.score_for(negative, C)
        assert not math.isnan(score)
        assert score >= 0.0
        assert negative.scores == pytest.approx(absent.scores)

    def test_non_finite_weights_are_dropped(self):
        engine = EigenTrustEngine()
        odd = engine.compute([edge(A, B, 1.0), edge(A, C, float("nan")), edge(A, D, float("inf"))])
        assert all(math.isfinite(v) for v in odd.scores.values())
        assert engine.score_for(odd, C) == pytest.approx(engine.score_for(odd, D))

    def test_self_loops_are_ignored(self):
        engine = EigenTrustEngine()
        with_loop = engine.compute([edge(A, A, 5.0), edge(A, B)])
        without = engine.compute([edge(A, B)])
        assert with_loop.scores == pytest.approx(without.scores)

    def test_later_edge_for_same_pair_wins(self):
        engine = EigenTrustEngine()
        overwritten = engine.compute([edge(A, B, 5.0), edge(A, C, 1.0), edge(A, B, 1.0)])
        assert engine.score_for(overwritten, B) == pytest.approx(engine.score_for(overwritten, C))


class TestConvergence:

    def test_twenty_node_ring_converges(self):
        result = EigenTrustEngine().compute(_ring(20))
        assert result.converged
        assert result.iterations <= SolverConfig().max_iterations

    def test_iteration_cap_reports_non_convergence(self):
        engine = EigenTrustEngine(SolverConfig(max_iterations=1))
        result = engine.compute([edge(A, D), edge(B, D), edge(C, D), edge(D, A)])
        assert result.iterations == 1
        assert not result.converged
        assert abs(sum(result.scores.values()) - 1.0) < 1e-6

    def test_iterations_never_exceed_cap(self):
        engine = EigenTrustEngine(SolverConfig(max_iterations=7))
        result = engine.compute(_cycle(), pre_trusted={A})
        assert result.iterations <= 7


class TestSolverConfig:

    def test_defaults(self):
        config = SolverConfig()
        assert config.decay_factor == 0.85
        assert config.convergence_threshold == 1e-4
        assert config.max_iterations == 50

    @pytest.mark.parametrize("kwargs", [
        {"decay_factor": 1.5},
        {"decay_factor": -0.1},
        {"convergence_threshold": 0},
        {"max_iterations": 0},
    ])
    def test_invalid_values_rejected(self, kwargs):
        with pytest.raises(ValueError):
            SolverConfig(**kwargs)


class TestResultAccessors:

    def test_score_for_unknown_is_zero(self):
        result = EigenTrustEngine().compute(_cycle())
        assert EigenTrustEngine.score_for(result, addr(999)) == 0

    def test_score_for_falls_back_to_lowercase(self):
        mixed = addr(0xABCDEF)
        result = EigenTrustEngine().compute([edge(mixed, A), edge(A, mixed)])
        checksummed = "0x" + mixed[2:].upper()
        assert EigenTrustEngine.score_for(result, checksummed) == result.scores[mixed]

    def test_top_n_sorted_descending(self):
        result = EigenTrustEngine().compute([edge(A, D), edge(B, D), edge(C, D), edge(D, A)])
        top = EigenTrustEngine.top_n(result, 3)
        assert len(top) == 3
        assert top[0][0] == D
        assert [s for _, s in top] == sorted((s for _, s in top), reverse=True)

    def test_top_n_bounds(self):
        result = EigenTrustEngine().compute(_cycle())
        assert EigenTrustEngine.top_n(result, 0) == []
        assert len(EigenTrustEngine.top_n(result, 10)) == 3
