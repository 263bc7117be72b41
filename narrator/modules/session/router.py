from __future__ import annotations

import logging
from collections.abc import Awaitable

from fastapi import APIRouter, Depends, Header, HTTPException, status

from narrator.config import settings
from narrator.errors import NarratorError
from narrator.modules.llm.errors import ModelReplyError, ModelTransportError, PromptConfigurationError
from narrator.modules.llm.schemas import LoreUnlock
from narrator.modules.persistence.errors import PersistenceError
from narrator.modules.session.controller import GameController, TurnOutcome
from narrator.modules.session.errors import InvalidInputError, SessionBusyError, SessionNotFoundError
from narrator.modules.session.registry import SessionRegistry, get_session_registry
from narrator.modules.session.schemas import (
    ActionRequest,
    ChoiceRequest,
    DeepDiveRequest,
    IdentifierRequest,
    NewGameRequest,
    SessionCreateOut,
    SessionCreateRequest,
    SessionSaveOut,
    SessionStepOut,
    SessionViewOut,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/sessions", tags=["sessions"])


def error_status(exc: NarratorError) -> int:
    if isinstance(exc, SessionNotFoundError):
        return status.HTTP_404_NOT_FOUND
    if isinstance(exc, SessionBusyError):
        return status.HTTP_409_CONFLICT
    if isinstance(exc, InvalidInputError):
        return status.HTTP_422_UNPROCESSABLE_ENTITY
    if isinstance(exc, PromptConfigurationError):
        return status.HTTP_500_INTERNAL_SERVER_ERROR
    if isinstance(exc, (ModelTransportError, ModelReplyError)):
        return status.HTTP_502_BAD_GATEWAY
    if isinstance(exc, PersistenceError):
        return status.HTTP_503_SERVICE_UNAVAILABLE
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def http_error(exc: NarratorError) -> HTTPException:
    return HTTPException(status_code=error_status(exc), detail={"code": exc.error_kind, "message": str(exc)})


def outcome_out(outcome: TurnOutcome) -> dict:
    return {
        "narrative": outcome.narrative,
        "system_messages": list(outcome.system_messages),
        "suggested_actions": [action.to_dict() for action in outcome.suggested_actions],
        "panel_transitions": [transition.to_dict() for transition in outcome.panel_transitions],
        "xp_awarded": outcome.xp_awarded,
        "leveled_up": outcome.leveled_up,
        "input_enabled": outcome.input_enabled,
        "awaiting_identifier": outcome.awaiting_identifier,
        "error": outcome.error.to_dict() if outcome.error else None,
    }


def _user_id(x_user_id: str | None = Header(default=None, alias="X-User-Id")) -> str | None:
    value = str(x_user_id or "").strip()
    return value or None


def _controller(
    session_id: str,
    user_id: str | None = Depends(_user_id),
    registry: SessionRegistry = Depends(get_session_registry),
) -> GameController:
    try:
        return registry.get(session_id, user_id=user_id)
    except SessionNotFoundError as exc:
        raise http_error(exc) from exc


async def _step(session_id: str, controller: GameController, call: Awaitable[TurnOutcome]) -> dict:
    try:
        outcome = await call
    except NarratorError as exc:
        logger.info("session request rejected session_id=%s kind=%s", session_id, exc.error_kind)
        raise http_error(exc) from exc
    return {"id": session_id, "outcome": outcome_out(outcome), "state": controller.view()}


@router.post("", response_model=SessionCreateOut, status_code=status.HTTP_201_CREATED)
async def create_session(
    payload: SessionCreateRequest,
    user_id: str | None = Depends(_user_id),
    registry: SessionRegistry = Depends(get_session_registry),
):
    theme_id = (payload.theme_id or settings.default_theme_id).strip()
    try:
        session_id, controller = registry.create(theme_id, user_id=user_id, language=payload.narrative_language)
    except NarratorError as exc:
        raise http_error(exc) from exc
    call = controller.resume() if payload.resume else controller.start_new_game()
    return await _step(session_id, controller, call)


@router.get("/{session_id}", response_model=SessionViewOut)
def get_session(controller: GameController = Depends(_controller)):
    return controller.view()


@router.post("/{session_id}/new-game", response_model=SessionStepOut)
async def new_game(session_id: str, payload: NewGameRequest, controller: GameController = Depends(_controller)):
    return await _step(session_id, controller, controller.start_new_game(payload.use_evolved_world))


@router.post("/{session_id}/resume", response_model=SessionStepOut)
async def resume_game(session_id: str, controller: GameController = Depends(_controller)):
    return await _step(session_id, controller, controller.resume())


@router.post("/{session_id}/identifier", response_model=SessionStepOut)
async def submit_identifier(
    session_id: str,
    payload: IdentifierRequest,
    controller: GameController = Depends(_controller),
):
    return await _step(session_id, controller, controller.submit_identifier(payload.identifier))


@router.post("/{session_id}/actions", response_model=SessionStepOut)
async def submit_action(session_id: str, payload: ActionRequest, controller: GameController = Depends(_controller)):
    return await _step(session_id, controller, controller.submit_action(payload.text))


@router.post("/{session_id}/choices", response_model=SessionStepOut)
async def resolve_choice(session_id: str, payload: ChoiceRequest, controller: GameController = Depends(_controller)):
    return await _step(session_id, controller, controller.resolve_choice(payload.choice_id))


@router.post("/{session_id}/deep-dive", response_model=SessionStepOut)
async def mull_over_shard(
    session_id: str,
    payload: DeepDiveRequest,
    controller: GameController = Depends(_controller),
):
    shard = LoreUnlock.model_validate(payload.model_dump())
    return await _step(session_id, controller, controller.mull_over_shard(shard))


@router.post("/{session_id}/save", response_model=SessionSaveOut)
async def save_session(session_id: str, controller: GameController = Depends(_controller)):
    try:
        saved = await controller.save()
    except NarratorError as exc:
        raise http_error(exc) from exc
    return {"id": session_id, "saved": saved}


@router.delete("/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_session(
    session_id: str,
    controller: GameController = Depends(_controller),
    registry: SessionRegistry = Depends(get_session_registry),
):
    registry.discard(session_id)
