import json

import pytest

from narrator.modules.llm.errors import (
    CONTENT_BLOCKED,
    REPLY_EMPTY,
    REPLY_JSON_PARSE,
    REPLY_SCHEMA_VALIDATE,
    ContentBlockedError,
    ModelReplyError,
)
from narrator.modules.llm.parsers import (
    ReplyErr,
    ReplyOk,
    extract_candidate_text,
    parse_deep_dive_reply,
    parse_model_reply,
    sanitize_raw_snippet,
)
from narrator.modules.llm.providers.fake import candidate_response


def test_parse_model_reply_accepts_missing_xp() -> None:
    reply = parse_model_reply(json.dumps({"narrative": "x", "dashboard_updates": {}, "suggested_actions": []}))
    assert isinstance(reply, ReplyOk)
    assert reply.response.xp_awarded is None


def test_parse_model_reply_recovers_fenced_json() -> None:
    raw = 'Here you go:\n```json\n{"narrative": "n", "dashboard_updates": {}, "suggested_actions": ["a"]}\n```'
    reply = parse_model_reply(raw)
    assert isinstance(reply, ReplyOk)
    assert reply.payload["suggested_actions"] == ["a"]


def test_parse_model_reply_keeps_unknown_keys_in_payload() -> None:
    reply = parse_model_reply({"narrative": "n", "dashboard_updates": {}, "suggested_actions": [], "mood": "grim"})
    assert isinstance(reply, ReplyOk)
    assert reply.payload["mood"] == "grim"


@pytest.mark.parametrize(
    ("raw", "kind"),
    [
        ("", REPLY_EMPTY),
        ("not json at all", REPLY_JSON_PARSE),
        ('{"dashboard_updates": {}, "suggested_actions": []}', REPLY_SCHEMA_VALIDATE),
        ('{"narrative": "n", "dashboard_updates": {}, "suggested_actions": [], "xp_awarded": true}', REPLY_SCHEMA_VALIDATE),
        ('{"narrative": "n", "dashboard_updates": {}, "suggested_actions": [], "xp_awarded": Infinity}', REPLY_SCHEMA_VALIDATE),
        ("[1, 2]", REPLY_SCHEMA_VALIDATE),
    ],
)
def test_parse_model_reply_errors(raw: str, kind: str) -> None:
    reply = parse_model_reply(raw)
    assert isinstance(reply, ReplyErr)
    assert reply.error.error_kind == kind


@pytest.mark.parametrize(
    "extra",
    [
        {"game_state_indicators": []},
        {"game_state_indicators": "combat"},
        {"input_placeholder": 5},
        {"input_placeholder": None},
        {"new_persistent_lore_unlock": {"title": "Cairn"}},
        {"new_persistent_lore_unlock": False},
        {"new_persistent_lore_unlock": "a lost cairn"},
        {"new_persistent_lore_unlock": {"title": "", "content": "Stones."}},
    ],
)
def test_parse_model_reply_tolerates_malformed_optional_fields(extra: dict) -> None:
    raw = {"narrative": "n", "dashboard_updates": {}, "suggested_actions": ["a"], "xp_awarded": 3, **extra}
    reply = parse_model_reply(json.dumps(raw))
    assert isinstance(reply, ReplyOk)
    assert reply.response.narrative == "n"
    assert reply.response.xp_awarded == 3
    assert reply.response.game_state_indicators is None
    assert reply.response.input_placeholder is None
    assert reply.response.new_persistent_lore_unlock is None
    assert reply.payload == raw


def test_parse_model_reply_keeps_well_formed_optional_fields() -> None:
    reply = parse_model_reply(
        {
            "narrative": "n",
            "dashboard_updates": {},
            "suggested_actions": [],
            "game_state_indicators": {"combat_active": True},
            "input_placeholder": "Speak",
            "new_persistent_lore_unlock": {"title": "Cairn", "content": "Stones.", "extra": 1},
        }
    )
    assert isinstance(reply, ReplyOk)
    assert reply.response.game_state_indicators == {"combat_active": True}
    assert reply.response.input_placeholder == "Speak"
    assert reply.response.new_persistent_lore_unlock.title == "Cairn"


def test_extract_candidate_text_reads_first_part() -> None:
    assert extract_candidate_text(candidate_response("hello")) == "hello"


def test_extract_candidate_text_reports_block_reason() -> None:
    with pytest.raises(ContentBlockedError) as exc_info:
        extract_candidate_text(
            {
                "promptFeedback": {
                    "blockReason": "SAFETY",
                    "safetyRatings": [{"category": "HARM_CATEGORY_HARASSMENT", "probability": "HIGH"}],
                }
            }
        )
    assert exc_info.value.error_kind == CONTENT_BLOCKED
    assert "SAFETY" in str(exc_info.value)


def test_extract_candidate_text_without_candidates_is_empty_reply() -> None:
    with pytest.raises(ModelReplyError) as exc_info:
        extract_candidate_text({"candidates": []})
    assert exc_info.value.error_kind == REPLY_EMPTY


def test_parse_deep_dive_reply_requires_string_narrative() -> None:
    assert parse_deep_dive_reply('{"deep_dive_narrative": "echoes"}').deep_dive_narrative == "echoes"
    with pytest.raises(ModelReplyError) as exc_info:
        parse_deep_dive_reply('{"deep_dive_narrative": 3}')
    assert exc_info.value.error_kind == REPLY_SCHEMA_VALIDATE


def test_sanitize_raw_snippet_redacts_keys_and_truncates() -> None:
    text = sanitize_raw_snippet("key=AIzaSyA1234567890abcdef\nnext line " + "x" * 300)
    assert "AIza" not in text
    assert "[REDACTED_KEY]" in text
    assert len(text) == 200
    assert sanitize_raw_snippet("   ") is None
