"""
Compute — Collaborator errors.
"""


class CollaboratorUnavailable(Exception):
    """An external data source could not be reached or answered with an error."""

    def __init__(self, source: str, detail: str):
        self.source = source
        self.detail = detail
        super().__init__(f"{source} unavailable: {detail}")
