from __future__ import annotations

import json
import os
import time
from pathlib import Path
from typing import Any

import httpx
import typer

app = typer.Typer(help="Narrator backend CLI")
session_app = typer.Typer(help="Session commands")
app.add_typer(session_app, name="session")

DEFAULT_BACKEND_URL = "http://127.0.0.1:8000"
API_PREFIX = "/api/v1"
STATE_PATH = Path(__file__).resolve().parent / ".state.json"
USER_HEADER = "X-User-Id"
BUSY_MAX_ATTEMPTS = 3
BUSY_RETRY_BACKOFF_S = 0.35


def load_state(path: Path = STATE_PATH) -> dict[str, Any]:
    if not path.exists():
        return {}
    try:
        return json.loads(path.read_text())
    except (json.JSONDecodeError, OSError):
        return {}


def save_state(data: dict[str, Any], path: Path = STATE_PATH) -> None:
    path.write_text(json.dumps(data, ensure_ascii=False, indent=2))


def backend_url() -> str:
    return os.getenv("BACKEND_URL", DEFAULT_BACKEND_URL).rstrip("/")


def build_user_headers(user_id: str | None = None) -> dict[str, str]:
    value = str(user_id if user_id is not None else os.getenv("NARRATOR_USER_ID", "")).strip()
    return {USER_HEADER: value} if value else {}


def request(
    method: str,
    endpoint: str,
    *,
    json_body: dict[str, Any] | None = None,
    params: dict[str, Any] | None = None,
    headers: dict[str, str] | None = None,
) -> httpx.Response:
    url = f"{backend_url()}{API_PREFIX}{endpoint}"
    with httpx.Client(timeout=90.0) as client:
        return client.request(method, url, json=json_body, params=params, headers=headers)


def response_detail_code(resp: httpx.Response) -> str | None:
    try:
        payload = resp.json()
    except ValueError:
        return None
    detail = payload.get("detail") if isinstance(payload, dict) else None
    if isinstance(detail, dict):
        code = detail.get("code")
        if isinstance(code, str) and code.strip():
            return code.strip()
    return None


def is_session_busy_response(resp: httpx.Response) -> bool:
    return int(resp.status_code) == 409 and response_detail_code(resp) == "SESSION_BUSY"


def _resolve_session_id(session_id: str | None) -> str:
    if session_id:
        return session_id
    sid = load_state().get("session_id")
    if not sid:
        raise typer.BadParameter("No session id provided and no saved session in client/.state.json")
    return str(sid)


def _handle_response(resp: httpx.Response, action: str) -> dict[str, Any] | None:
    if resp.status_code == 404:
        typer.echo(f"{action}: session not found ({resp.status_code}).")
        return None
    if resp.status_code >= 400:
        typer.echo(f"{action} failed ({resp.status_code}): {resp.text}")
        raise typer.Exit(code=1)
    if resp.status_code == 204 or not resp.content:
        return {}
    try:
        return resp.json()
    except ValueError:
        typer.echo(resp.text)
        return None


def format_outcome(outcome: dict[str, Any]) -> list[str]:
    lines: list[str] = []
    for message in outcome.get("system_messages") or []:
        lines.append(f"[system] {message}")
    if outcome.get("narrative"):
        lines.append(str(outcome["narrative"]))
    if outcome.get("xp_awarded"):
        lines.append(f"xp: +{outcome['xp_awarded']}")
    error = outcome.get("error")
    if isinstance(error, dict):
        lines.append(f"error: {error.get('kind')}: {error.get('message')}")
    actions = outcome.get("suggested_actions") or []
    if actions:
        lines.append("actions:")
        for action in actions:
            choice = action.get("choice_id")
            label = action.get("display_text") or action.get("text")
            lines.append(f"  - {choice}: {label}" if choice else f"  - {label}")
    if outcome.get("awaiting_identifier"):
        lines.append("waiting for a player name (narrator session identify NAME)")
    return lines


def _print_step(body: dict[str, Any]) -> None:
    for line in format_outcome(body.get("outcome") or {}):
        typer.echo(line)
    state = body.get("state") or {}
    if state.get("progression_step") not in (None, "none"):
        typer.echo(f"selection pending: {state.get('progression_step')}")


def _post_step(endpoint: str, payload: dict[str, Any], action: str, user_id: str | None) -> None:
    headers = build_user_headers(user_id)
    for attempt in range(1, BUSY_MAX_ATTEMPTS + 1):
        try:
            resp = request("POST", endpoint, json_body=payload, headers=headers)
        except httpx.RequestError as exc:
            typer.echo(f"{action} failed: network error ({exc})")
            raise typer.Exit(code=1) from exc
        if is_session_busy_response(resp) and attempt < BUSY_MAX_ATTEMPTS:
            time.sleep(BUSY_RETRY_BACKOFF_S * attempt)
            continue
        body = _handle_response(resp, action)
        if body:
            _print_step(body)
        return


@app.command()
def ping() -> None:
    with httpx.Client(timeout=10.0) as client:
        resp = client.get(f"{backend_url()}/health")
    body = _handle_response(resp, "ping")
    if body is not None:
        typer.echo(f"ok: {body}")


@session_app.command("start")
def session_start(
    theme_id: str | None = typer.Option(None, "--theme", help="Theme id; server default when omitted"),
    language: str | None = typer.Option(None, "--language", help="Narrative language code"),
    resume: bool = typer.Option(False, "--resume", help="Continue the saved game for this theme"),
    user_id: str | None = typer.Option(None, "--user", help="Signed-in user id"),
) -> None:
    payload: dict[str, Any] = {"resume": resume}
    if theme_id:
        payload["theme_id"] = theme_id
    if language:
        payload["narrative_language"] = language
    resp = request("POST", "/sessions", json_body=payload, headers=build_user_headers(user_id))
    body = _handle_response(resp, "session start")
    if not body:
        return
    state = load_state()
    state["session_id"] = body.get("id")
    if user_id is not None:
        state["user_id"] = user_id
    save_state(state)
    typer.echo(f"session_id: {body.get('id')}")
    _print_step(body)


def _user(user_id: str | None) -> str | None:
    return user_id if user_id is not None else load_state().get("user_id")


@session_app.command("identify")
def session_identify(
    name: str = typer.Argument(..., help="Player name"),
    session_id: str | None = typer.Option(None, "--session"),
    user_id: str | None = typer.Option(None, "--user"),
) -> None:
    sid = _resolve_session_id(session_id)
    _post_step(f"/sessions/{sid}/identifier", {"identifier": name}, "identify", _user(user_id))


@session_app.command("act")
def session_act(
    text: str = typer.Argument(..., help="Player action text"),
    session_id: str | None = typer.Option(None, "--session"),
    user_id: str | None = typer.Option(None, "--user"),
) -> None:
    sid = _resolve_session_id(session_id)
    _post_step(f"/sessions/{sid}/actions", {"text": text}, "act", _user(user_id))


@session_app.command("choose")
def session_choose(
    choice_id: str = typer.Argument(..., help="Choice id from the offered actions"),
    session_id: str | None = typer.Option(None, "--session"),
    user_id: str | None = typer.Option(None, "--user"),
) -> None:
    sid = _resolve_session_id(session_id)
    _post_step(f"/sessions/{sid}/choices", {"choice_id": choice_id}, "choose", _user(user_id))


@session_app.command("show")
def session_show(
    session_id: str | None = typer.Option(None, "--session"),
    user_id: str | None = typer.Option(None, "--user"),
) -> None:
    sid = _resolve_session_id(session_id)
    resp = request("GET", f"/sessions/{sid}", headers=build_user_headers(_user(user_id)))
    body = _handle_response(resp, "session show")
    if not body:
        return
    typer.echo(f"theme: {body.get('theme_id')}  player: {body.get('player_identifier') or '-'}")
    progress = body.get("progress") or {}
    typer.echo(f"level: {progress.get('level')}  xp: {progress.get('current_xp')}")
    stats = body.get("run_stats") or {}
    typer.echo(
        f"integrity: {stats.get('current_integrity')}  willpower: {stats.get('current_willpower')}  "
        f"strain: {stats.get('strain_level')}"
    )
    typer.echo(f"prompt_type: {body.get('prompt_type')}  step: {body.get('progression_step')}")
    for key, value in (body.get("dashboard") or {}).items():
        typer.echo(f"  {key}: {value}")


if __name__ == "__main__":
    app()
