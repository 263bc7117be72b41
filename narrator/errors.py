from __future__ import annotations


class NarratorError(RuntimeError):
    """Base for every failure the engine reports back to its caller."""

    def __init__(self, message: str, *, error_kind: str, raw_snippet: str | None = None):
        super().__init__(message)
        self.error_kind = str(error_kind)
        self.raw_snippet = raw_snippet
