import httpx

from narrator_cli import (
    DEFAULT_BACKEND_URL,
    USER_HEADER,
    backend_url,
    build_user_headers,
    format_outcome,
    is_session_busy_response,
)


def test_backend_url_default(monkeypatch) -> None:
    monkeypatch.delenv("BACKEND_URL", raising=False)
    assert backend_url() == DEFAULT_BACKEND_URL


def test_backend_url_env(monkeypatch) -> None:
    monkeypatch.setenv("BACKEND_URL", "http://localhost:9999/")
    assert backend_url() == "http://localhost:9999"


def test_build_user_headers_anonymous(monkeypatch) -> None:
    monkeypatch.delenv("NARRATOR_USER_ID", raising=False)
    assert build_user_headers() == {}
    assert build_user_headers("  ") == {}


def test_build_user_headers_uses_given_or_env_id(monkeypatch) -> None:
    monkeypatch.setenv("NARRATOR_USER_ID", "from-env")
    assert build_user_headers() == {USER_HEADER: "from-env"}
    assert build_user_headers("u-1") == {USER_HEADER: "u-1"}


def test_is_session_busy_response_true() -> None:
    request = httpx.Request("POST", "http://test/api/v1/sessions/x/actions")
    response = httpx.Response(409, request=request, json={"detail": {"code": "SESSION_BUSY", "message": "busy"}})
    assert is_session_busy_response(response) is True


def test_is_session_busy_response_false() -> None:
    request = httpx.Request("POST", "http://test/api/v1/sessions/x/actions")
    response = httpx.Response(409, request=request, json={"detail": {"code": "OTHER"}})
    assert is_session_busy_response(response) is False
    assert is_session_busy_response(httpx.Response(409, request=request, text="nope")) is False


def test_format_outcome_lists_choices_and_errors() -> None:
    lines = format_outcome(
        {
            "narrative": "The bell tolls.",
            "system_messages": ["Level up!"],
            "xp_awarded": 15,
            "suggested_actions": [
                {"text": "Ring it", "display_text": "Ring it"},
                {"text": "+10 Max Integrity", "display_text": "+10 Max Integrity", "choice_id": "boon_max_integrity"},
            ],
            "error": {"kind": "REPLY_JSON_PARSE", "message": "bad reply"},
        }
    )
    assert lines[0] == "[system] Level up!"
    assert "The bell tolls." in lines
    assert "xp: +15" in lines
    assert "error: REPLY_JSON_PARSE: bad reply" in lines
    assert "  - Ring it" in lines
    assert "  - boon_max_integrity: +10 Max Integrity" in lines
