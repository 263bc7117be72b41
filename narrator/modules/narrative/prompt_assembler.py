from __future__ import annotations

import json
import logging
import random
import re
from dataclasses import dataclass, field

from narrator.modules.llm.errors import CONFIG_TEMPLATE_MISSING, CONFIG_THEME_MISSING
from narrator.modules.llm.schemas import LoreUnlock
from narrator.modules.narrative.indicators import PROMPT_TYPE_INITIAL
from narrator.modules.progression.models import RunStats, UserThemeProgress, effective_attributes
from narrator.modules.session.history import ROLE_MODEL, ROLE_USER, HistoryLedger, ModelTurn
from narrator.modules.theme.schemas import ThemeConfig
from narrator.modules.theme.store import MASTER_THEME_ID, ThemeStore, is_valid_prompt_text, non_blank_lines

logger = logging.getLogger(__name__)

MASTER_INITIAL = "master_initial"
MASTER_DEFAULT = "master_default"
MASTER_LORE_DEEP_DIVE = "master_lore_deep_dive"
STARTS_HELPER = "starts"
NO_INSTRUCTIONS = "No specific instructions provided for this context."
NO_SUMMARY = "No major long-term events have been summarized yet."
NO_RECENT_EVENTS = "No recent relevant game events to summarize for this reflection."

_HELPER_RE = re.compile(r"\{\{HELPER_RANDOM_LINE:([a-zA-Z0-9_]+)\}\}")
_PLACEHOLDER_RE = re.compile(r"\$\{([a-z0-9_]+)\}")
_ACTIVITY_STATUS_LINE = (
    '"activity_status": "string (MUST reflect the ongoing primary activity described in the narrative, '
    'IN THE NARRATIVE LANGUAGE.)",\n'
)


@dataclass(slots=True)
class PromptContext:
    theme_id: str
    prompt_type: str
    is_initial_load: bool
    narrative_language: str
    player_identifier: str
    progress: UserThemeProgress
    run_stats: RunStats
    cumulative_player_summary: str = ""
    evolved_world_lore: str = ""
    world_shards_json: str = "[]"
    recent_window_size: int = 10


@dataclass(slots=True, frozen=True)
class ErrorPrompt:
    """Terminal prompt failure, shaped like a model reply so it can be shown as-is."""

    narrative: str
    error_kind: str
    suggested_actions: list[str] = field(default_factory=list)

    def to_json(self) -> str:
        return json.dumps(
            {
                "narrative": self.narrative,
                "dashboard_updates": {},
                "suggested_actions": list(self.suggested_actions),
                "game_state_indicators": {},
                "xp_awarded": 0,
            },
            ensure_ascii=False,
        )


def substitute_placeholders(template: str, values: dict[str, str]) -> str:
    return _PLACEHOLDER_RE.sub(lambda m: values[m.group(1)] if m.group(1) in values else m.group(0), template)


def dashboard_description(theme: ThemeConfig, language: str) -> str:
    lines: list[str] = []
    for item in theme.dashboard_config.items():
        line = f'// "{item.id}": "string ({item.short_description or "No description available."}'
        if item.must_translate:
            line += f" This value MUST be in {language.upper()}."
        else:
            line += " This value does NOT require translation from English."
        if item.type == "meter" and item.status_text_id:
            line += f" Associated status text field is '{item.status_text_id}'."
        if item.default_value_key:
            line += f" Default UI text key: '{item.default_value_key}'."
        elif item.has_default_value:
            line += f" Default value: '{item.default_value}'."
        lines.append(line + ')",\n')
    block = "".join(lines)
    return block[:-2] if block.endswith(",\n") else block


def indicator_description(theme: ThemeConfig, language: str) -> str:
    indicators = theme.dashboard_config.game_state_indicators
    if indicators is None:
        return (
            f'"activity_status": "string (Reflects ongoing activity, in {language.upper()})",\n'
            '"combat_engaged": "boolean (True if combat starts THIS turn)"'
        )
    block = ""
    for indicator in indicators:
        line = f'"{indicator.id}": "boolean ({indicator.short_description or "No description."}'
        if indicator.default_value is not None:
            line += f" Default value: {str(indicator.default_value).lower()}."
        block += line + ')",\n'
    if '"activity_status"' not in block:
        block += _ACTIVITY_STATUS_LINE
    return block[:-2] if block.endswith(",\n") else block


def _helper_lines(store: ThemeStore, theme_id: str, key: str) -> list[str]:
    lines = non_blank_lines(store.get_helper_text(theme_id, key))
    if not lines:
        lines = non_blank_lines(store.get_helper_text(MASTER_THEME_ID, key))
    return lines


def resolve_helper_placeholders(text: str, store: ThemeStore, theme_id: str, rng: random.Random) -> str:
    def _replace(match: re.Match) -> str:
        key = match.group(1)
        lines = _helper_lines(store, theme_id, key)
        if not lines:
            logger.warning("helper asset missing or empty theme_id=%s key=%s", theme_id, key)
            return f"(Dynamic value for {key} could not be resolved)"
        return rng.choice(lines)

    return _HELPER_RE.sub(_replace, text)


def theme_instructions(
    store: ThemeStore,
    theme_id: str,
    instruction_key: str,
    language: str,
    rng: random.Random,
) -> str:
    text_key = f"theme_instructions_{instruction_key}_{theme_id}"
    text = store.lookup_text(theme_id, text_key, language)
    if text is None or not text.strip():
        return NO_INSTRUCTIONS
    return resolve_helper_placeholders(text, store, theme_id, rng)


def _theme_text(store: ThemeStore, theme: ThemeConfig, key: str | None, fallback_key: str, language: str) -> str:
    return store.get_text(theme.id, key or fallback_key, language)


def assemble_system_prompt(
    context: PromptContext,
    store: ThemeStore,
    *,
    rng: random.Random | None = None,
) -> str | ErrorPrompt:
    """Build the system instruction for one narrative turn.

    Sampling (helper lines and start ideas) is the only non-deterministic part; pass
    ``rng`` to make it reproducible.
    """
    rng = rng or random.Random()
    theme = store.get_config(context.theme_id)
    if theme is None:
        logger.error("theme configuration missing theme_id=%s", context.theme_id)
        return ErrorPrompt(
            narrative="SYSTEM ERROR: Active theme configuration is missing for prompt generation.",
            error_kind=CONFIG_THEME_MISSING,
        )

    active_prompt_type = PROMPT_TYPE_INITIAL if context.is_initial_load else context.prompt_type
    base_key = MASTER_INITIAL if context.is_initial_load else context.prompt_type
    template = store.get_prompt_text(theme.id, base_key)
    if not is_valid_prompt_text(template):
        logger.debug("prompt missing, falling back theme_id=%s key=%s", theme.id, base_key)
        base_key = MASTER_DEFAULT
        template = store.get_prompt_text(theme.id, base_key)
    if not is_valid_prompt_text(template):
        logger.error("no usable prompt template theme_id=%s prompt_type=%s", theme.id, active_prompt_type)
        return ErrorPrompt(
            narrative=(
                f"SYSTEM ERROR: Core prompt file (type: {active_prompt_type}, final key: {base_key}) "
                "is critically missing or invalid."
            ),
            error_kind=CONFIG_TEMPLATE_MISSING,
            suggested_actions=["Restart Game"],
        )

    language = context.narrative_language
    instruction_key = base_key if base_key.startswith("master_") else active_prompt_type
    attrs = effective_attributes(theme.base_attributes, context.progress)
    theme_lore = store.get_text(theme.id, theme.lore_key, language)
    values = {
        "narrative_language_instruction": store.narrative_language_instruction(theme.id, language),
        "player_name": context.player_identifier or store.get_text(theme.id, "unknown", language),
        "narrative_language": language.upper(),
        "theme_name": store.get_text(theme.id, theme.name_key, language),
        "theme_lore": theme_lore,
        "theme_category": _theme_text(store, theme, theme.category_key, f"theme_category_{theme.id}", language),
        "theme_style": _theme_text(store, theme, theme.style_key, f"theme_style_{theme.id}", language),
        "theme_tone": _theme_text(store, theme, theme.tone_key, f"theme_tone_{theme.id}", language),
        "theme_inspiration": _theme_text(
            store, theme, theme.inspiration_key, f"theme_inspiration_{theme.id}", language
        ),
        "theme_concept": _theme_text(store, theme, theme.concept_key, f"theme_concept_{theme.id}", language),
        "theme_instructions": theme_instructions(store, theme.id, instruction_key, language, rng),
        "generated_dashboard_description": dashboard_description(theme, language),
        "generated_game_state_indicators": indicator_description(theme, language),
        "game_history_lore": context.evolved_world_lore or theme_lore,
        "game_history_summary": context.cumulative_player_summary or NO_SUMMARY,
        "recent_window_size": str(context.recent_window_size),
        "world_shards_json": context.world_shards_json if base_key == MASTER_INITIAL else "[]",
        "player_level": str(context.progress.level),
        "effective_max_integrity": str(attrs.max_integrity),
        "effective_max_willpower": str(attrs.max_willpower),
        "effective_aptitude": str(attrs.aptitude),
        "effective_resilience": str(attrs.resilience),
        "acquired_traits_json": json.dumps(list(context.progress.acquired_trait_keys), ensure_ascii=False),
        "strain_level": str(context.run_stats.strain_level),
        "active_conditions_json": json.dumps(sorted(context.run_stats.conditions), ensure_ascii=False),
    }

    if base_key == MASTER_INITIAL:
        starts = _helper_lines(store, theme.id, STARTS_HELPER)
        picked = rng.sample(starts, min(3, len(starts)))
        for index in range(3):
            slot = f"start_idea_{index + 1}"
            values[slot] = picked[index] if index < len(picked) else f"Generic {values['theme_name']} scenario {index + 1}"

    return substitute_placeholders(template, values)


def _truncate(text: str, limit: int) -> str:
    return text[:limit] + ("..." if len(text) > limit else "")


def recent_events_snippet(history: HistoryLedger | None) -> str:
    """Last player action and the narrative that preceded it, for deep-dive reflection."""
    if history is None:
        return NO_RECENT_EVENTS
    turns = list(history.turns)
    user_index = next((i for i in range(len(turns) - 1, -1, -1) if turns[i].role == ROLE_USER), None)
    if user_index is None:
        return NO_RECENT_EVENTS
    player_action = _truncate(turns[user_index].text, 100)
    gm_narrative = "N/A"
    for turn in reversed(turns[:user_index]):
        if turn.role == ROLE_MODEL and isinstance(turn, ModelTurn):
            if turn.narrative:
                gm_narrative = _truncate(turn.narrative, 150)
            break
    return f"Prior Player Action: {player_action}\nPrevious GM Narrative: {gm_narrative}"


def assemble_deep_dive_prompt(
    context: PromptContext,
    shard: LoreUnlock,
    store: ThemeStore,
    *,
    history: HistoryLedger | None = None,
) -> str | ErrorPrompt:
    theme = store.get_config(context.theme_id)
    template = store.get_prompt_text(MASTER_THEME_ID, MASTER_LORE_DEEP_DIVE)
    if theme is None or not is_valid_prompt_text(template):
        logger.error("deep dive template or theme missing theme_id=%s", context.theme_id)
        return ErrorPrompt(
            narrative="SYSTEM ERROR: Deep dive prompt template missing.",
            error_kind=CONFIG_THEME_MISSING if theme is None else CONFIG_TEMPLATE_MISSING,
        )
    language = context.narrative_language
    values = {
        "theme_name": store.get_text(theme.id, theme.name_key, language),
        "narrative_language": language.upper(),
        "lore_fragment_title": shard.title,
        "lore_fragment_content": shard.content,
        "game_history_lore": context.evolved_world_lore or store.get_text(theme.id, theme.lore_key, language),
        "recent_events_snippet": recent_events_snippet(history),
    }
    return substitute_placeholders(template, values)
