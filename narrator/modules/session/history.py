from __future__ import annotations

import json
from dataclasses import dataclass, field

ROLE_USER = "user"
ROLE_MODEL = "model"
ROLE_SYSTEM_LOG = "system_log"


@dataclass(frozen=True)
class UserTurn:
    text: str
    role: str = field(default=ROLE_USER, init=False)

    def to_wire(self) -> dict:
        return {"role": self.role, "parts": [{"text": self.text}]}


@dataclass(frozen=True)
class ModelTurn:
    payload: dict
    role: str = field(default=ROLE_MODEL, init=False)

    @property
    def text(self) -> str:
        return json.dumps(self.payload, ensure_ascii=False)

    @property
    def narrative(self) -> str:
        value = self.payload.get("narrative")
        return value if isinstance(value, str) else ""

    def to_wire(self) -> dict:
        return {"role": self.role, "parts": [{"text": self.text}]}


@dataclass(frozen=True)
class SystemLogTurn:
    text: str
    tags: tuple[str, ...] = ()
    role: str = field(default=ROLE_SYSTEM_LOG, init=False)

    def to_wire(self) -> dict:
        return {"role": self.role, "parts": [{"text": self.text}], "tags": list(self.tags)}


HistoryTurn = UserTurn | ModelTurn | SystemLogTurn


def turn_from_wire(raw: object) -> HistoryTurn | None:
    """Inverse of ``to_wire``; returns None for entries that are not recognizable turns."""
    if not isinstance(raw, dict):
        return None
    parts = raw.get("parts") or []
    text = ""
    if parts and isinstance(parts[0], dict):
        text = str(parts[0].get("text") or "")
    role = raw.get("role")
    if role == ROLE_USER:
        return UserTurn(text)
    if role == ROLE_MODEL:
        try:
            payload = json.loads(text) if text else {}
        except json.JSONDecodeError:
            payload = {"narrative": text}
        return ModelTurn(payload if isinstance(payload, dict) else {"narrative": text})
    if role == ROLE_SYSTEM_LOG:
        tags = raw.get("tags") or []
        return SystemLogTurn(text, tuple(str(tag) for tag in tags if isinstance(tag, str)))
    return None


class HistoryLedger:
    """Append-only turn log with a delta of turns not yet persisted.

    The delta is only cleared by ``replace`` and ``clear``; a successful save does not
    clear it, so a retried save re-sends turns instead of losing them.
    """

    def __init__(self, turns: list[HistoryTurn] | None = None):
        self._turns: list[HistoryTurn] = list(turns or [])
        self._delta: list[HistoryTurn] = []

    def __len__(self) -> int:
        return len(self._turns)

    def __iter__(self):
        return iter(tuple(self._turns))

    @property
    def turns(self) -> tuple[HistoryTurn, ...]:
        return tuple(self._turns)

    @property
    def delta(self) -> tuple[HistoryTurn, ...]:
        return tuple(self._delta)

    def append(self, turn: HistoryTurn) -> None:
        self._turns.append(turn)
        self._delta.append(turn)

    def replace(self, turns: list[HistoryTurn]) -> None:
        self._turns = list(turns)
        self._delta = []

    def clear(self) -> None:
        self._turns = []
        self._delta = []

    def last(self, role: str | None = None) -> HistoryTurn | None:
        for turn in reversed(self._turns):
            if role is None or turn.role == role:
                return turn
        return None

    def recent_transcript(self, window: int) -> list[dict]:
        """Last ``window`` user/model turns in wire form; system log turns are skipped."""
        conversational = [turn for turn in self._turns if turn.role in (ROLE_USER, ROLE_MODEL)]
        if window <= 0:
            return []
        return [turn.to_wire() for turn in conversational[-window:]]

    def to_wire(self) -> list[dict]:
        return [turn.to_wire() for turn in self._turns]

    @classmethod
    def from_wire(cls, raw_turns: object) -> HistoryLedger:
        turns = [turn_from_wire(raw) for raw in raw_turns] if isinstance(raw_turns, list) else []
        return cls([turn for turn in turns if turn is not None])
