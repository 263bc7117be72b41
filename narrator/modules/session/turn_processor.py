from __future__ import annotations

import logging
import random
import time

from narrator.errors import NarratorError
from narrator.modules.llm.base import ModelProxy
from narrator.modules.llm.errors import PromptConfigurationError
from narrator.modules.llm.parsers import ReplyErr, extract_candidate_text, parse_model_reply, sanitize_raw_snippet
from narrator.modules.llm.schemas import DEFAULT_GENERATION_CONFIG, DEFAULT_SAFETY_SETTINGS, ModelResponse
from narrator.modules.narrative.actions import normalize_suggested_actions
from narrator.modules.narrative.prompt_assembler import ErrorPrompt, PromptContext, assemble_system_prompt
from narrator.modules.progression.models import RunStats, UserThemeProgress
from narrator.modules.session.history import ModelTurn, UserTurn
from narrator.modules.session.state import GameSession
from narrator.modules.telemetry.service import record_turn_failure, record_turn_success
from narrator.modules.theme.store import ThemeStore

logger = logging.getLogger(__name__)


def build_generate_request(
    contents: list[dict],
    system_text: str,
    *,
    model_name: str,
    generation_config: dict | None = None,
) -> dict:
    return {
        "contents": contents,
        "generationConfig": dict(generation_config or DEFAULT_GENERATION_CONFIG),
        "safetySettings": [dict(item) for item in DEFAULT_SAFETY_SETTINGS],
        "systemInstruction": {"parts": [{"text": system_text}]},
        "modelName": model_name,
    }


def prompt_context(
    session: GameSession,
    progress: UserThemeProgress,
    run_stats: RunStats,
    *,
    recent_window: int,
) -> PromptContext:
    return PromptContext(
        theme_id=session.theme_id,
        prompt_type=session.prompt_type,
        is_initial_load=session.is_initial_load,
        narrative_language=session.narrative_language,
        player_identifier=session.player_identifier,
        progress=progress,
        run_stats=run_stats,
        cumulative_player_summary=session.cumulative_player_summary,
        evolved_world_lore=session.evolved_world_lore,
        world_shards_json=session.world_shards_json,
        recent_window_size=recent_window,
    )


class TurnProcessor:
    """Runs one narrative turn against the model proxy and applies a valid reply.

    The caller appends the player turn before calling ``process_turn``. On any error
    nothing is applied to the session and the error propagates.
    """

    def __init__(
        self,
        session: GameSession,
        store: ThemeStore,
        proxy: ModelProxy,
        *,
        recent_window: int = 10,
        rng: random.Random | None = None,
    ):
        self.session = session
        self.store = store
        self.proxy = proxy
        self.recent_window = int(recent_window)
        self.rng = rng

    def transcript(self, action_text: str) -> list[dict]:
        if self.session.is_initial_load:
            return [UserTurn(action_text).to_wire()]
        return self.session.history.recent_transcript(self.recent_window)

    async def process_turn(
        self,
        action_text: str,
        is_game_starting_action: bool,
        *,
        progress: UserThemeProgress,
        run_stats: RunStats,
    ) -> ModelResponse:
        started = time.perf_counter()
        logger.info(
            "processing turn theme_id=%s starting=%s action=%s",
            self.session.theme_id,
            is_game_starting_action,
            sanitize_raw_snippet(action_text, max_len=50),
        )
        try:
            response, payload = await self._generate(action_text, progress=progress, run_stats=run_stats)
        except NarratorError as exc:
            record_turn_failure(error_kind=exc.error_kind)
            logger.warning(
                "turn failed theme_id=%s kind=%s raw=%s", self.session.theme_id, exc.error_kind, exc.raw_snippet
            )
            raise

        self._apply(response, payload)
        xp = response.xp_awarded or 0
        record_turn_success(latency_ms=(time.perf_counter() - started) * 1000, xp_awarded=int(xp) if xp > 0 else 0)
        return response

    async def _generate(
        self,
        action_text: str,
        *,
        progress: UserThemeProgress,
        run_stats: RunStats,
    ) -> tuple[ModelResponse, dict]:
        context = prompt_context(self.session, progress, run_stats, recent_window=self.recent_window)
        system_prompt = assemble_system_prompt(context, self.store, rng=self.rng)
        if isinstance(system_prompt, ErrorPrompt):
            raise PromptConfigurationError(
                system_prompt.narrative,
                error_kind=system_prompt.error_kind,
                error_prompt=system_prompt.to_json(),
            )

        request = build_generate_request(
            self.transcript(action_text),
            system_prompt,
            model_name=self.session.model_name,
        )
        raw_response = await self.proxy.generate(request)
        reply = parse_model_reply(extract_candidate_text(raw_response))
        if isinstance(reply, ReplyErr):
            raise reply.error
        return reply.response, reply.payload

    def _apply(self, response: ModelResponse, payload: dict) -> None:
        session = self.session
        session.history.append(ModelTurn(payload))
        session.last_dashboard_updates = {**session.last_dashboard_updates, **response.dashboard_updates}
        session.suggested_actions = normalize_suggested_actions(response.suggested_actions)
        session.last_indicators = dict(response.game_state_indicators or {})
        session.input_placeholder = response.input_placeholder or self.store.get_text(
            session.theme_id, "placeholder_command", session.narrative_language
        )
        if response.new_persistent_lore_unlock is not None:
            session.pending_lore_unlock = response.new_persistent_lore_unlock
        session.is_initial_load = False
