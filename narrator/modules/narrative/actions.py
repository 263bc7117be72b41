from __future__ import annotations

from dataclasses import asdict, dataclass

KIND_ACTION = "action"
KIND_BOON = "boon"
KIND_TRAIT = "trait"


@dataclass(slots=True, frozen=True)
class SuggestedAction:
    text: str
    display_text: str
    description: str = ""
    choice_id: str | None = None
    kind: str = KIND_ACTION

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_raw(cls, raw: object) -> SuggestedAction | None:
        if isinstance(raw, str):
            text = raw.strip()
            return cls(text=text, display_text=text) if text else None
        if not isinstance(raw, dict):
            return None
        text = str(raw.get("text") or raw.get("display_text") or "").strip()
        if not text:
            return None
        kind = str(raw.get("kind") or KIND_ACTION)
        return cls(
            text=text,
            display_text=str(raw.get("display_text") or text),
            description=str(raw.get("description") or ""),
            choice_id=raw.get("choice_id") if isinstance(raw.get("choice_id"), str) else None,
            kind=kind if kind in (KIND_ACTION, KIND_BOON, KIND_TRAIT) else KIND_ACTION,
        )


def normalize_suggested_actions(raw_actions: object) -> list[SuggestedAction]:
    if not isinstance(raw_actions, list):
        return []
    actions = [SuggestedAction.from_raw(raw) for raw in raw_actions]
    return [action for action in actions if action is not None]
