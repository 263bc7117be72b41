from __future__ import annotations

from narrator.errors import NarratorError


class PromptConfigurationError(NarratorError):
    """Raised when no usable system prompt can be assembled for the theme."""

    def __init__(self, message: str, *, error_kind: str, error_prompt: str | None = None):
        super().__init__(message, error_kind=error_kind)
        self.error_prompt = error_prompt


class ModelTransportError(NarratorError):
    """Raised when the model proxy cannot be reached or answers non-2xx."""

    def __init__(
        self,
        message: str,
        *,
        error_kind: str,
        status_code: int | None = None,
        raw_snippet: str | None = None,
    ):
        super().__init__(message, error_kind=error_kind, raw_snippet=raw_snippet)
        self.status_code = status_code


class ContentBlockedError(ModelTransportError):
    """Raised when the model declines to answer (promptFeedback.blockReason)."""

    def __init__(self, block_reason: str, *, details: str | None = None):
        super().__init__(
            f"content blocked by model: {block_reason}",
            error_kind=CONTENT_BLOCKED,
            raw_snippet=details,
        )
        self.block_reason = block_reason


class ModelReplyError(NarratorError, ValueError):
    """Raised when the model reply cannot be parsed or fails structural validation."""


CONFIG_THEME_MISSING = "CONFIG_THEME_MISSING"
CONFIG_TEMPLATE_MISSING = "CONFIG_TEMPLATE_MISSING"
TRANSPORT_TIMEOUT = "TRANSPORT_TIMEOUT"
TRANSPORT_NETWORK = "TRANSPORT_NETWORK"
TRANSPORT_HTTP_STATUS = "TRANSPORT_HTTP_STATUS"
CONTENT_BLOCKED = "CONTENT_BLOCKED"
REPLY_EMPTY = "REPLY_EMPTY"
REPLY_JSON_PARSE = "REPLY_JSON_PARSE"
REPLY_SCHEMA_VALIDATE = "REPLY_SCHEMA_VALIDATE"
