from fastapi.testclient import TestClient

from narrator.main import app
from narrator.modules.llm.providers.fake import FakeModelProxy
from narrator.modules.session.registry import get_session_registry
from tests.support.game import turn_reply

BASE = "/api/v1/sessions"


def _client() -> TestClient:
    return TestClient(app)


def _start(client: TestClient, headers: dict | None = None, **payload) -> dict:
    resp = client.post(BASE, json=payload, headers=headers or {})
    assert resp.status_code == 201, resp.text
    return resp.json()


def test_health() -> None:
    resp = _client().get("/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}


def test_list_themes() -> None:
    resp = _client().get("/api/v1/themes")
    assert resp.status_code == 200
    themes = resp.json()
    assert [theme["id"] for theme in themes] == ["grim_warden"]
    assert themes[0]["name"] == "Grim Warden"
    assert themes[0]["prompt_types"] == ["combat_active", "omen_detected"]


def test_anonymous_session_flow() -> None:
    client = _client()
    created = _start(client)
    sid = created["id"]
    assert created["outcome"]["awaiting_identifier"] is True
    assert created["state"]["model_name"] == "gemini-1.5-flash-latest"

    offer = client.post(f"{BASE}/{sid}/identifier", json={"identifier": "Aldric"})
    assert offer.status_code == 200
    body = offer.json()
    assert body["state"]["progression_step"] == "initial_trait"
    trait_choice = body["outcome"]["suggested_actions"][0]["choice_id"]

    chosen = client.post(f"{BASE}/{sid}/choices", json={"choice_id": trait_choice})
    assert chosen.status_code == 200
    assert chosen.json()["outcome"]["narrative"]
    assert chosen.json()["state"]["history_length"] == 2

    acted = client.post(f"{BASE}/{sid}/actions", json={"text": "Walk toward the lights"})
    assert acted.status_code == 200
    assert acted.json()["state"]["history_length"] == 4

    view = client.get(f"{BASE}/{sid}")
    assert view.status_code == 200
    assert view.json()["player_identifier"] == "Aldric"

    telemetry = client.get("/api/v1/telemetry/turns").json()
    assert telemetry["successful_turns"] == 2


def test_signed_in_session_persists_and_resumes() -> None:
    client = _client()
    headers = {"X-User-Id": "user-42"}
    sid = _start(client, headers)["id"]
    client.post(f"{BASE}/{sid}/identifier", json={"identifier": "Brynn"}, headers=headers)
    controller = get_session_registry().get(sid, user_id="user-42")
    first_trait = controller.engine.offered_actions()[0].choice_id
    client.post(f"{BASE}/{sid}/choices", json={"choice_id": first_trait}, headers=headers)

    saved = client.post(f"{BASE}/{sid}/save", headers=headers)
    assert saved.json() == {"id": sid, "saved": True}

    resumed = _start(client, headers, resume=True)
    assert resumed["id"] != sid
    assert resumed["state"]["player_identifier"] == "Brynn"
    assert resumed["state"]["history_length"] == 2
    assert resumed["state"]["model_name"] == "gemini-1.5-pro-latest"
    assert resumed["state"]["progress"]["acquired_trait_keys"] == [first_trait.split(":", 1)[1]]


def test_sessions_are_private_to_their_owner() -> None:
    client = _client()
    sid = _start(client, {"X-User-Id": "owner"})["id"]
    assert client.get(f"{BASE}/{sid}").status_code == 404
    assert client.get(f"{BASE}/{sid}", headers={"X-User-Id": "intruder"}).status_code == 404
    assert client.get(f"{BASE}/{sid}", headers={"X-User-Id": "owner"}).status_code == 200


def test_error_mapping() -> None:
    client = _client()
    missing = client.get(f"{BASE}/does-not-exist")
    assert missing.status_code == 404
    assert missing.json()["detail"]["code"] == "SESSION_NOT_FOUND"

    unknown_theme = client.post(BASE, json={"theme_id": "no_such_theme"})
    assert unknown_theme.status_code == 422
    assert unknown_theme.json()["detail"]["code"] == "INVALID_INPUT"

    sid = _start(client)["id"]
    blank = client.post(f"{BASE}/{sid}/identifier", json={"identifier": "  "})
    assert blank.status_code == 422

    no_offer = client.post(f"{BASE}/{sid}/choices", json={"choice_id": "boon_max_integrity"})
    assert no_offer.status_code == 422

    get_session_registry().get(sid).is_processing = True
    busy = client.post(f"{BASE}/{sid}/actions", json={"text": "Hello"})
    assert busy.status_code == 409
    assert busy.json()["detail"]["code"] == "SESSION_BUSY"


def test_model_failure_is_reported_in_outcome() -> None:
    client = _client()
    sid = _start(client, {"X-User-Id": "u-7"})["id"]
    controller = get_session_registry().get(sid, user_id="u-7")
    proxy = FakeModelProxy([turn_reply(), "this is not json"])
    controller.proxy = proxy
    controller.processor.proxy = proxy
    controller.progress.acquired_trait_keys = ["iron_oath"]

    client.post(f"{BASE}/{sid}/identifier", json={"identifier": "Cato"}, headers={"X-User-Id": "u-7"})
    resp = client.post(f"{BASE}/{sid}/actions", json={"text": "Speak"}, headers={"X-User-Id": "u-7"})

    assert resp.status_code == 200
    outcome = resp.json()["outcome"]
    assert outcome["error"]["kind"] == "REPLY_JSON_PARSE"
    assert outcome["input_enabled"] is True


def test_deep_dive_and_delete() -> None:
    client = _client()
    sid = _start(client)["id"]
    controller = get_session_registry().get(sid)
    controller.progress.acquired_trait_keys = ["iron_oath"]
    client.post(f"{BASE}/{sid}/identifier", json={"identifier": "Aldric"})

    dive = client.post(f"{BASE}/{sid}/deep-dive", json={"title": "Ash Road", "content": "Paved with pyre ash."})
    assert dive.status_code == 200
    assert dive.json()["outcome"]["narrative"] == "The fragment stirs old memories in the mist."

    invalid = client.post(f"{BASE}/{sid}/deep-dive", json={"title": "", "content": "x"})
    assert invalid.status_code == 422

    assert client.delete(f"{BASE}/{sid}").status_code == 204
    assert client.get(f"{BASE}/{sid}").status_code == 404
