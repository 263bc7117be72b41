from __future__ import annotations

import json
import logging
import random
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field

from narrator.errors import NarratorError
from narrator.modules.llm.base import ModelProxy
from narrator.modules.llm.errors import CONFIG_THEME_MISSING, PromptConfigurationError
from narrator.modules.llm.parsers import extract_candidate_text, parse_deep_dive_reply
from narrator.modules.llm.schemas import DEEP_DIVE_GENERATION_CONFIG, LoreUnlock, ModelResponse
from narrator.modules.narrative.actions import SuggestedAction, normalize_suggested_actions
from narrator.modules.narrative.indicators import PanelTransition, panel_transitions, resolve_prompt_type
from narrator.modules.narrative.prompt_assembler import ErrorPrompt, assemble_deep_dive_prompt
from narrator.modules.persistence.base import PersistenceGateway
from narrator.modules.persistence.errors import PersistenceError
from narrator.modules.persistence.schemas import SavedGameState
from narrator.modules.progression.engine import (
    ApplyBoon,
    InitialTraitChosen,
    OfferChanged,
    ProgressionEngine,
    Reoffer,
)
from narrator.modules.progression.models import RunStats, UserThemeProgress, effective_attributes
from narrator.modules.progression.rules import is_level_up_due
from narrator.modules.session.errors import InvalidInputError, SessionBusyError
from narrator.modules.session.history import HistoryLedger, ModelTurn, UserTurn
from narrator.modules.session.state import GameSession
from narrator.modules.session.turn_processor import TurnProcessor, build_generate_request, prompt_context
from narrator.modules.telemetry.service import record_level_up
from narrator.modules.theme.schemas import BaseAttributes, ThemeConfig
from narrator.modules.theme.store import ThemeStore

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class OutcomeError:
    kind: str
    message: str

    def to_dict(self) -> dict:
        return {"kind": self.kind, "message": self.message}


@dataclass(slots=True)
class TurnOutcome:
    narrative: str | None = None
    system_messages: list[str] = field(default_factory=list)
    suggested_actions: list[SuggestedAction] = field(default_factory=list)
    panel_transitions: list[PanelTransition] = field(default_factory=list)
    xp_awarded: int = 0
    leveled_up: bool = False
    input_enabled: bool = True
    awaiting_identifier: bool = False
    error: OutcomeError | None = None


class GameController:
    """Entry points of one game session.

    Every public coroutine returns a ``TurnOutcome``; engine failures are reported in
    ``TurnOutcome.error`` rather than raised. Only misuse (bad input, concurrent calls)
    raises.
    """

    def __init__(
        self,
        session: GameSession,
        *,
        store: ThemeStore,
        proxy: ModelProxy,
        gateway: PersistenceGateway,
        recent_window: int = 10,
        max_action_chars: int = 600,
        rng: random.Random | None = None,
    ):
        self.session = session
        self.store = store
        self.proxy = proxy
        self.gateway = gateway
        self.max_action_chars = int(max_action_chars)
        self.rng = rng
        self.engine = ProgressionEngine(store, session.theme_id, rng=rng)
        self.processor = TurnProcessor(session, store, proxy, recent_window=recent_window, rng=rng)
        self.progress = UserThemeProgress()
        self.run_stats = RunStats.fresh(self._attributes())
        self.is_processing = False
        self.input_enabled = True
        self.awaiting_identifier = False
        self.last_outcome: TurnOutcome | None = None

    # -- helpers -----------------------------------------------------------

    @property
    def theme(self) -> ThemeConfig | None:
        return self.store.get_config(self.session.theme_id)

    def _attributes(self):
        theme = self.theme
        base = theme.base_attributes if theme else BaseAttributes()
        return effective_attributes(base, self.progress)

    def _text(self, key: str, **replacements: object) -> str:
        return self.store.get_text(self.session.theme_id, key, self.session.narrative_language, **replacements)

    @asynccontextmanager
    async def _busy(self) -> AsyncIterator[None]:
        if self.is_processing:
            raise SessionBusyError()
        self.is_processing = True
        try:
            yield
        finally:
            self.is_processing = False

    def _offer_outcome(self, outcome: TurnOutcome | None = None, message_key: str | None = None) -> TurnOutcome:
        outcome = outcome or TurnOutcome()
        key = message_key or self.engine.prompt_key()
        if key:
            outcome.system_messages.append(self._text(key, level=self.progress.level + 1))
        outcome.suggested_actions = self.engine.offered_actions(self.session.narrative_language)
        outcome.input_enabled = False
        self.input_enabled = False
        return outcome

    def _error_outcome(self, exc: NarratorError, outcome: TurnOutcome | None = None) -> TurnOutcome:
        outcome = outcome or TurnOutcome()
        outcome.error = OutcomeError(kind=exc.error_kind, message=str(exc))
        if self.engine.is_active:
            return self._offer_outcome(outcome)
        outcome.suggested_actions = list(self.session.suggested_actions)
        outcome.input_enabled = True
        outcome.awaiting_identifier = self.awaiting_identifier
        self.input_enabled = True
        return outcome

    def _remember(self, outcome: TurnOutcome) -> TurnOutcome:
        self.last_outcome = outcome
        return outcome

    def _refresh_panels(self) -> list[PanelTransition]:
        theme = self.theme
        if theme is None:
            return []
        transitions = panel_transitions(self.session.last_indicators, theme, self.session.panel_states)
        for transition in transitions:
            self.session.panel_states[transition.panel_id] = transition.visible
        return transitions

    def _recompute_prompt_type(self) -> None:
        theme = self.theme
        if theme is None:
            return
        resolution = resolve_prompt_type(self.session.last_indicators, theme, self.store)
        if resolution.prompt_type != self.session.prompt_type:
            logger.info(
                "prompt type switched theme_id=%s from=%s to=%s",
                self.session.theme_id,
                self.session.prompt_type,
                resolution.prompt_type,
            )
        self.session.prompt_type = resolution.prompt_type

    async def _enter_level_up(self, outcome: TurnOutcome) -> TurnOutcome:
        record_level_up()
        self.engine.enter_primary(self.session.suggested_actions)
        outcome.leveled_up = True
        outcome.system_messages.append(self._text("level_up", level=self.progress.level + 1))
        return self._offer_outcome(outcome)

    # -- persistence -------------------------------------------------------

    def build_save_payload(self) -> SavedGameState:
        session = self.session
        return SavedGameState(
            theme_id=session.theme_id,
            player_identifier=session.player_identifier,
            game_history=session.history.to_wire(),
            last_dashboard_updates=dict(session.last_dashboard_updates),
            last_game_state_indicators=dict(session.last_indicators),
            current_prompt_type=session.prompt_type,
            current_narrative_language=session.narrative_language,
            last_suggested_actions=[action.to_dict() for action in session.suggested_actions],
            panel_states=dict(session.panel_states),
            input_placeholder=session.input_placeholder,
            model_name_used=session.model_name,
            game_history_summary=session.cumulative_player_summary,
            game_history_lore=session.evolved_world_lore,
            new_persistent_lore_unlock=session.pending_lore_unlock,
            is_boon_selection_pending=self.progress.is_boon_selection_pending,
        )

    async def _save(self) -> bool:
        session = self.session
        if not session.player_identifier and len(session.history) == 0:
            logger.debug("save skipped, nothing to save theme_id=%s", session.theme_id)
            return False
        await self.gateway.save_game_state(self.build_save_payload())
        session.pending_lore_unlock = None
        return True

    async def _save_into(self, outcome: TurnOutcome) -> None:
        try:
            await self._save()
        except PersistenceError as exc:
            logger.warning("game save failed theme_id=%s kind=%s", self.session.theme_id, exc.error_kind)
            outcome.system_messages.append(str(exc))
            if outcome.error is None:
                outcome.error = OutcomeError(kind=exc.error_kind, message=str(exc))

    async def save(self) -> bool:
        async with self._busy():
            return await self._save()

    # -- turns -------------------------------------------------------------

    async def _after_turn(self, response: ModelResponse) -> TurnOutcome:
        session = self.session
        xp = int(response.xp_awarded or 0)
        outcome = TurnOutcome(narrative=response.narrative, xp_awarded=max(0, xp))
        if session.pending_lore_unlock is not None:
            outcome.system_messages.append(self._text("lore_unlocked", title=session.pending_lore_unlock.title))

        leveled_up = self.engine.award_xp(self.progress, xp)
        self._recompute_prompt_type()
        outcome.panel_transitions = self._refresh_panels()
        self.run_stats.refresh_from_dashboard(response.dashboard_updates, self._attributes())

        if xp > 0 or leveled_up:
            try:
                self.progress = await self.gateway.save_progress(session.theme_id, self.progress)
            except PersistenceError as exc:
                logger.warning("progress save failed theme_id=%s kind=%s", session.theme_id, exc.error_kind)
                outcome.system_messages.append(str(exc))

        if leveled_up:
            await self._enter_level_up(outcome)
        else:
            outcome.suggested_actions = list(session.suggested_actions)
            outcome.input_enabled = True
            self.input_enabled = True
        await self._save_into(outcome)
        return outcome

    async def _run_turn(self, action_text: str, *, is_game_starting_action: bool) -> TurnOutcome:
        self.session.history.append(UserTurn(action_text))
        self.input_enabled = False
        try:
            response = await self.processor.process_turn(
                action_text,
                is_game_starting_action,
                progress=self.progress,
                run_stats=self.run_stats,
            )
        except NarratorError as exc:
            return self._error_outcome(exc)
        return await self._after_turn(response)

    # -- entry points ------------------------------------------------------

    async def _start_new_game(self, use_evolved_world: bool) -> TurnOutcome:
        self.session.reset_volatile()
        self.session.use_evolved_world = bool(use_evolved_world)
        self.engine.reset()
        outcome = TurnOutcome(awaiting_identifier=True)
        try:
            self.progress = await self.gateway.fetch_progress(self.session.theme_id)
        except PersistenceError as exc:
            logger.warning("progress load failed theme_id=%s kind=%s", self.session.theme_id, exc.error_kind)
            self.progress = UserThemeProgress()
            outcome.system_messages.append(str(exc))
        self.run_stats = RunStats.fresh(self._attributes())
        self.awaiting_identifier = True
        self.input_enabled = True
        if self.theme is None:
            outcome.error = OutcomeError(kind=CONFIG_THEME_MISSING, message=f"theme {self.session.theme_id} not found")
        return outcome

    async def start_new_game(self, use_evolved_world: bool = False) -> TurnOutcome:
        async with self._busy():
            return self._remember(await self._start_new_game(use_evolved_world))

    async def _world_shards_json(self) -> str:
        shards = await self.gateway.fetch_active_shards(self.session.theme_id)
        return json.dumps(
            [
                {
                    "title": shard.title,
                    "content": shard.content,
                    "key_suggestion": shard.key_suggestion,
                }
                for shard in shards
            ],
            ensure_ascii=False,
        )

    async def submit_identifier(self, identifier: str) -> TurnOutcome:
        async with self._busy():
            name = str(identifier or "").strip()
            if not name:
                raise InvalidInputError("player identifier must not be blank")
            if self.engine.is_active:
                raise InvalidInputError("a selection is pending; resolve it first")
            if not self.awaiting_identifier:
                raise InvalidInputError("session is not waiting for an identifier")
            theme = self.theme
            if theme is None:
                return self._remember(
                    self._error_outcome(
                        PromptConfigurationError(
                            f"theme {self.session.theme_id} not found", error_kind=CONFIG_THEME_MISSING
                        )
                    )
                )

            self.session.player_identifier = name
            self.awaiting_identifier = False
            theme_name = self._text(theme.name_key)
            initial_text = (
                f'Start game as "{name}". Theme: {theme_name}. '
                f"Evolved World: {str(self.session.use_evolved_world).lower()}."
            )
            if self.session.use_evolved_world:
                try:
                    self.session.world_shards_json = await self._world_shards_json()
                except PersistenceError as exc:
                    logger.warning("world shards unavailable theme_id=%s kind=%s", theme.id, exc.error_kind)
                    self.session.world_shards_json = "[]"

            if self.engine.begin_initial_trait_offer(self.progress, initial_text):
                return self._remember(self._offer_outcome())
            return self._remember(await self._run_turn(initial_text, is_game_starting_action=True))

    async def submit_action(self, text: str) -> TurnOutcome:
        async with self._busy():
            action = str(text or "").strip()
            if self.engine.is_active:
                choice_id = self.engine.match_choice(action, self.session.narrative_language)
                if choice_id is None:
                    return self._remember(self._offer_outcome(message_key="invalid_choice"))
                return self._remember(await self._resolve_choice(choice_id))
            if self.awaiting_identifier:
                raise InvalidInputError("submit a player identifier first")
            if not action:
                raise InvalidInputError("action text must not be blank")
            if len(action) > self.max_action_chars:
                raise InvalidInputError(f"action text exceeds {self.max_action_chars} characters")
            return self._remember(await self._run_turn(action, is_game_starting_action=False))

    async def resolve_choice(self, choice_id: str) -> TurnOutcome:
        async with self._busy():
            if not self.engine.is_active:
                raise InvalidInputError("no selection is pending")
            return self._remember(await self._resolve_choice(str(choice_id or "").strip()))

    async def _resolve_choice(self, choice_id: str) -> TurnOutcome:
        language = self.session.narrative_language
        decision = self.engine.select(choice_id, self.progress, language)
        if isinstance(decision, Reoffer):
            return self._offer_outcome(message_key=decision.message_key)
        if isinstance(decision, OfferChanged):
            return self._offer_outcome(message_key=decision.message_key)
        if isinstance(decision, ApplyBoon):
            return await self._apply_boon(decision)
        if isinstance(decision, InitialTraitChosen):
            return await self._choose_initial_trait(decision)
        raise TypeError(f"unknown selection decision: {decision!r}")

    async def _apply_boon(self, decision: ApplyBoon) -> TurnOutcome:
        try:
            updated = await self.gateway.apply_boon(self.session.theme_id, decision.payload)
        except PersistenceError as exc:
            logger.warning("boon rejected theme_id=%s kind=%s", self.session.theme_id, exc.error_kind)
            self.engine.boon_failed()
            outcome = TurnOutcome(error=OutcomeError(kind=exc.error_kind, message=str(exc)))
            return self._offer_outcome(outcome, message_key="boon_failed")

        self.progress = updated
        self.session.suggested_actions = self.engine.boon_applied()
        self.run_stats = RunStats.fresh(self._attributes())
        outcome = TurnOutcome(system_messages=[self._text("boon_applied", level=self.progress.level)])

        if is_level_up_due(self.progress):
            self.progress.is_boon_selection_pending = True
            try:
                self.progress = await self.gateway.save_progress(self.session.theme_id, self.progress)
            except PersistenceError as exc:
                outcome.system_messages.append(str(exc))
            await self._enter_level_up(outcome)
        else:
            outcome.suggested_actions = list(self.session.suggested_actions)
            outcome.input_enabled = True
            self.input_enabled = True
        await self._save_into(outcome)
        return outcome

    async def _choose_initial_trait(self, decision: InitialTraitChosen) -> TurnOutcome:
        candidate = self.progress.copy()
        candidate.acquired_trait_keys = [decision.trait_key]
        try:
            self.progress = await self.gateway.save_progress(self.session.theme_id, candidate)
        except PersistenceError as exc:
            outcome = TurnOutcome(error=OutcomeError(kind=exc.error_kind, message=str(exc)))
            return self._offer_outcome(outcome, message_key="boon_failed")
        self.engine.initial_trait_done()

        definition = self.store.get_traits(self.session.theme_id).get(decision.trait_key)
        trait_name = self._text(definition.name_key) if definition else decision.trait_key
        outcome = await self._run_turn(decision.deferred_action, is_game_starting_action=True)
        outcome.system_messages.insert(0, self._text("trait_chosen", trait=trait_name))
        return outcome

    async def resume(self) -> TurnOutcome:
        async with self._busy():
            session = self.session
            try:
                saved = await self.gateway.load_game_state(session.theme_id)
            except PersistenceError as exc:
                return self._remember(self._error_outcome(exc))
            if saved is None:
                logger.info("no saved game, starting new theme_id=%s", session.theme_id)
                return self._remember(await self._start_new_game(False))

            self.engine.reset()
            try:
                self.progress = await self.gateway.fetch_progress(session.theme_id)
            except PersistenceError as exc:
                return self._remember(self._error_outcome(exc))

            session.history.replace(list(HistoryLedger.from_wire(saved.game_history).turns))
            session.player_identifier = saved.player_identifier
            session.last_dashboard_updates = dict(saved.last_dashboard_updates)
            session.last_indicators = dict(saved.last_game_state_indicators)
            session.suggested_actions = normalize_suggested_actions(saved.last_suggested_actions)
            session.narrative_language = saved.current_narrative_language or session.narrative_language
            session.input_placeholder = saved.input_placeholder
            session.panel_states = dict(saved.panel_states)
            session.cumulative_player_summary = saved.game_history_summary
            session.evolved_world_lore = saved.game_history_lore
            session.model_name = session.model_name or saved.model_name_used
            session.pending_lore_unlock = None
            session.is_initial_load = len(session.history) == 0
            session.prompt_type = saved.current_prompt_type
            self.awaiting_identifier = not session.player_identifier
            self._recompute_prompt_type()

            outcome = TurnOutcome(awaiting_identifier=self.awaiting_identifier)
            last_model = session.history.last("model")
            if isinstance(last_model, ModelTurn):
                outcome.narrative = last_model.narrative or None
            outcome.panel_transitions = self._refresh_panels()
            self.run_stats = RunStats.from_dashboard(session.last_dashboard_updates, self._attributes())

            if self.progress.is_boon_selection_pending:
                self.engine.enter_primary(session.suggested_actions)
                return self._remember(self._offer_outcome(outcome))
            outcome.suggested_actions = list(session.suggested_actions)
            self.input_enabled = True
            return self._remember(outcome)

    async def mull_over_shard(self, shard: LoreUnlock) -> TurnOutcome:
        async with self._busy():
            if self.engine.is_active:
                raise InvalidInputError("a selection is pending; resolve it first")
            if not shard.title.strip() or not shard.content.strip():
                raise InvalidInputError("shard title and content are required")
            context = prompt_context(
                self.session, self.progress, self.run_stats, recent_window=self.processor.recent_window
            )
            system_prompt = assemble_deep_dive_prompt(context, shard, self.store, history=self.session.history)
            if isinstance(system_prompt, ErrorPrompt):
                return self._remember(
                    self._error_outcome(
                        PromptConfigurationError(system_prompt.narrative, error_kind=system_prompt.error_kind)
                    )
                )

            self.session.history.append(UserTurn(self._text("mull_over_action", title=shard.title)))
            request = build_generate_request(
                [],
                system_prompt,
                model_name=self.session.model_name,
                generation_config=DEEP_DIVE_GENERATION_CONFIG,
            )
            try:
                raw_response = await self.proxy.generate(request)
                reply = parse_deep_dive_reply(extract_candidate_text(raw_response))
            except NarratorError as exc:
                logger.warning("deep dive failed theme_id=%s kind=%s", self.session.theme_id, exc.error_kind)
                return self._remember(self._error_outcome(exc))

            self.session.history.append(
                ModelTurn(
                    {
                        "narrative": reply.deep_dive_narrative,
                        "isDeepDive": True,
                        "relatedShardTitle": shard.title,
                    }
                )
            )
            outcome = TurnOutcome(
                narrative=reply.deep_dive_narrative,
                suggested_actions=list(self.session.suggested_actions),
            )
            self.input_enabled = True
            await self._save_into(outcome)
            return self._remember(outcome)

    # -- projection --------------------------------------------------------

    def view(self) -> dict:
        session = self.session
        return {
            "theme_id": session.theme_id,
            "player_identifier": session.player_identifier,
            "narrative_language": session.narrative_language,
            "model_name": session.model_name,
            "dashboard": dict(session.last_dashboard_updates),
            "indicators": dict(session.last_indicators),
            "suggested_actions": [
                action.to_dict()
                for action in (
                    self.engine.offered_actions(session.narrative_language)
                    if self.engine.is_active
                    else session.suggested_actions
                )
            ],
            "progress": self.progress.to_dict(),
            "run_stats": self.run_stats.to_dict(),
            "prompt_type": session.prompt_type,
            "is_initial_load": session.is_initial_load,
            "input_enabled": self.input_enabled and not self.engine.is_active,
            "input_placeholder": session.input_placeholder,
            "awaiting_identifier": self.awaiting_identifier,
            "progression_step": self.engine.step,
            "panel_states": dict(session.panel_states),
            "history_length": len(session.history),
            "is_processing": self.is_processing,
        }
