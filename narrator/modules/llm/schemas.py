import math
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, StrictFloat, StrictInt, StrictStr, ValidationError, model_validator


class LoreUnlock(BaseModel):
    model_config = ConfigDict(extra="ignore")

    title: StrictStr = Field(min_length=1)
    content: StrictStr = Field(min_length=1)
    key_suggestion: str = ""
    unlock_condition_description: str = ""


def _lore_unlock_or_none(raw: object) -> LoreUnlock | None:
    if isinstance(raw, LoreUnlock):
        return raw
    if not raw:
        return None
    try:
        return LoreUnlock.model_validate(raw)
    except ValidationError:
        return None


class ModelResponse(BaseModel):
    """Structured reply of one narrative turn.

    Unknown keys are kept so the re-serialized model turn carries everything the model
    said. ``xp_awarded`` is strict so JSON booleans are not read as 0/1. The optional
    fields never fail a reply: malformed values are read as absent.
    """

    model_config = ConfigDict(extra="allow")

    narrative: StrictStr
    dashboard_updates: dict[str, Any]
    suggested_actions: list[Any]
    xp_awarded: StrictInt | StrictFloat | None = None
    game_state_indicators: dict[str, Any] | None = None
    input_placeholder: str | None = None
    new_persistent_lore_unlock: LoreUnlock | None = None

    @model_validator(mode="before")
    @classmethod
    def _drop_malformed_optionals(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        if not isinstance(data.get("game_state_indicators"), dict):
            data["game_state_indicators"] = None
        if not isinstance(data.get("input_placeholder"), str):
            data["input_placeholder"] = None
        data["new_persistent_lore_unlock"] = _lore_unlock_or_none(data.get("new_persistent_lore_unlock"))
        return data

    @model_validator(mode="after")
    def _xp_is_finite(self):
        if isinstance(self.xp_awarded, float) and not math.isfinite(self.xp_awarded):
            raise ValueError("xp_awarded must be a finite number")
        return self


class DeepDiveReply(BaseModel):
    model_config = ConfigDict(extra="allow")

    deep_dive_narrative: StrictStr


DEFAULT_GENERATION_CONFIG: dict[str, Any] = {
    "temperature": 0.7,
    "topP": 0.95,
    "maxOutputTokens": 8192,
    "responseMimeType": "application/json",
}
DEEP_DIVE_GENERATION_CONFIG: dict[str, Any] = {
    **DEFAULT_GENERATION_CONFIG,
    "temperature": 0.65,
    "maxOutputTokens": 1024,
}
DEFAULT_SAFETY_SETTINGS: list[dict[str, str]] = [
    {"category": category, "threshold": "BLOCK_NONE"}
    for category in (
        "HARM_CATEGORY_HARASSMENT",
        "HARM_CATEGORY_HATE_SPEECH",
        "HARM_CATEGORY_SEXUALLY_EXPLICIT",
        "HARM_CATEGORY_DANGEROUS_CONTENT",
    )
]
