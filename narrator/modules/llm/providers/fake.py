import json
from collections import deque

from narrator.modules.llm.base import ModelProxy


def candidate_response(text: str) -> dict:
    return {"candidates": [{"content": {"parts": [{"text": text}]}}]}


class FakeModelProxy(ModelProxy):
    """Offline proxy: replays scripted replies, else answers with a stock turn."""

    name = "fake"

    def __init__(self, replies: list[object] | None = None):
        self.generate_calls = 0
        self.requests: list[dict] = []
        self._replies: deque[object] = deque(replies or [])

    def queue(self, *replies: object) -> None:
        self._replies.extend(replies)

    @staticmethod
    def _default_reply(payload: dict) -> dict:
        system_text = ""
        instruction = payload.get("systemInstruction") or {}
        parts = instruction.get("parts") or []
        if parts and isinstance(parts[0], dict):
            system_text = str(parts[0].get("text") or "")
        if "deep_dive_narrative" in system_text:
            body = {"deep_dive_narrative": "The fragment stirs old memories in the mist."}
        else:
            body = {
                "narrative": "The mist parts for a moment and the road ahead is clear.",
                "dashboard_updates": {},
                "suggested_actions": ["Press on", "Make camp", "Study the mist"],
                "game_state_indicators": {},
                "xp_awarded": 0,
            }
        return candidate_response(json.dumps(body))

    async def generate(self, payload: dict) -> dict:
        self.generate_calls += 1
        self.requests.append(payload)
        if not self._replies:
            return self._default_reply(payload)
        reply = self._replies.popleft()
        if isinstance(reply, Exception):
            raise reply
        if isinstance(reply, str):
            return candidate_response(reply)
        if isinstance(reply, dict) and ("candidates" in reply or "promptFeedback" in reply):
            return reply
        return candidate_response(json.dumps(reply))
