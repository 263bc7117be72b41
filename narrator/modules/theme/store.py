from __future__ import annotations

import json
import logging
from functools import lru_cache
from pathlib import Path
from threading import Lock

from jsonschema import Draft202012Validator
from pydantic import ValidationError

from narrator.config import settings
from narrator.modules.theme.schemas import ThemeConfig, TraitDefinition

logger = logging.getLogger(__name__)

MASTER_THEME_ID = "master"
PROMPT_ERROR_PREFIX = "ERROR:"
HELPER_MISSING_PREFIX = "HELPER_FILE_NOT_FOUND:"
DEFAULT_LANGUAGE = "en"

_ITEM_SCHEMA = {
    "type": "object",
    "required": ["id"],
    "properties": {
        "id": {"type": "string", "minLength": 1},
        "type": {"type": "string"},
        "short_description": {"type": "string"},
        "must_translate": {"type": "boolean"},
        "status_text_id": {"type": "string"},
        "default_value_key": {"type": "string"},
    },
}
_PANEL_SCHEMA = {
    "type": "object",
    "required": ["id", "items"],
    "properties": {
        "id": {"type": "string", "minLength": 1},
        "type": {"enum": ["static", "collapsible", "hidden_until_active"]},
        "indicator_key": {"type": "string"},
        "items": {"type": "array", "items": _ITEM_SCHEMA},
    },
}
THEME_CONFIG_SCHEMA: dict = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "type": "object",
    "required": ["id", "name_key", "lore_key"],
    "properties": {
        "id": {"type": "string", "pattern": "^[a-z0-9_]+$"},
        "name_key": {"type": "string", "minLength": 1},
        "lore_key": {"type": "string", "minLength": 1},
        "playable": {"type": "boolean"},
        "base_attributes": {
            "type": "object",
            "properties": {
                name: {"type": "integer", "minimum": 1}
                for name in ("integrity", "willpower", "aptitude", "resilience")
            },
        },
        "dashboard_config": {
            "type": "object",
            "properties": {
                "left_panel": {"type": "array", "items": _PANEL_SCHEMA},
                "right_panel": {"type": "array", "items": _PANEL_SCHEMA},
                "game_state_indicators": {
                    "type": "array",
                    "items": {
                        "type": "object",
                        "required": ["id"],
                        "properties": {
                            "id": {"type": "string", "minLength": 1},
                            "priority": {"type": "integer"},
                            "default_value": {"type": "boolean"},
                        },
                    },
                },
            },
        },
        "narrative_language_prompts": {
            "type": "object",
            "additionalProperties": {"type": "string"},
        },
    },
}


def is_valid_prompt_text(text: str | None) -> bool:
    if text is None:
        return False
    return not (text.startswith(PROMPT_ERROR_PREFIX) or text.startswith(HELPER_MISSING_PREFIX))


def non_blank_lines(text: str | None) -> list[str]:
    if not is_valid_prompt_text(text):
        return []
    return [line.strip() for line in str(text).split("\n") if line.strip()]


class ThemeStore:
    """Read-only access to theme configs, prompt templates, helper assets and texts.

    Each theme lives in its own directory under ``root``:

    - ``config.json``: theme configuration, validated against ``THEME_CONFIG_SCHEMA``
    - ``texts.json``: ``{language: {key: text}}``
    - ``traits.json``: ``{trait_key: {name_key, description_key}}``
    - ``prompts/<key>.txt`` and ``helpers/<key>.txt``

    The ``master`` directory holds the shared templates, helpers and texts. Missing
    templates and helpers are reported as sentinel strings, never exceptions.
    """

    def __init__(self, root: str | Path):
        self.root = Path(root)
        self._lock = Lock()
        self._configs: dict[str, ThemeConfig | None] = {}
        self._texts: dict[str, dict[str, dict[str, str]]] = {}
        self._traits: dict[str, dict[str, TraitDefinition]] = {}
        self._files: dict[tuple[str, str, str], str | None] = {}
        self._validator = Draft202012Validator(THEME_CONFIG_SCHEMA)

    def _read_json(self, path: Path) -> object | None:
        if not path.is_file():
            return None
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning("theme file unreadable path=%s err=%s", path, exc)
            return None

    def _read_asset(self, theme_id: str, folder: str, key: str) -> str | None:
        cache_key = (theme_id, folder, key)
        with self._lock:
            if cache_key in self._files:
                return self._files[cache_key]
        path = self.root / theme_id / folder / f"{key}.txt"
        text: str | None = None
        if path.is_file():
            try:
                text = path.read_text(encoding="utf-8")
            except OSError as exc:
                logger.warning("theme asset unreadable path=%s err=%s", path, exc)
        with self._lock:
            self._files[cache_key] = text
        return text

    def get_config(self, theme_id: str) -> ThemeConfig | None:
        with self._lock:
            if theme_id in self._configs:
                return self._configs[theme_id]
        config: ThemeConfig | None = None
        raw = self._read_json(self.root / theme_id / "config.json")
        if raw is not None:
            errors = sorted(self._validator.iter_errors(raw), key=lambda err: list(err.path))
            if errors:
                logger.warning(
                    "theme config rejected theme_id=%s err=%s", theme_id, "; ".join(err.message for err in errors[:3])
                )
            else:
                try:
                    config = ThemeConfig.model_validate(raw)
                except ValidationError as exc:
                    logger.warning("theme config rejected theme_id=%s err=%s", theme_id, exc)
        with self._lock:
            self._configs[theme_id] = config
        return config

    def get_prompt_text(self, theme_id: str, key: str) -> str:
        text = self._read_asset(theme_id, "prompts", key)
        if (text is None or not text.strip()) and key.startswith("master_") and theme_id != MASTER_THEME_ID:
            text = self._read_asset(MASTER_THEME_ID, "prompts", key)
        if text is None or not text.strip():
            return f"{PROMPT_ERROR_PREFIX} prompt '{key}' not found for theme '{theme_id}'"
        return text

    def get_helper_text(self, theme_id: str, key: str) -> str:
        text = self._read_asset(theme_id, "helpers", key)
        if text is None or not text.strip():
            return f"{HELPER_MISSING_PREFIX} helper '{key}' not found for theme '{theme_id}'"
        return text

    def has_valid_prompt(self, theme_id: str, key: str) -> bool:
        return is_valid_prompt_text(self.get_prompt_text(theme_id, key))

    def _text_table(self, theme_id: str) -> dict[str, dict[str, str]]:
        with self._lock:
            if theme_id in self._texts:
                return self._texts[theme_id]
        raw = self._read_json(self.root / theme_id / "texts.json")
        table: dict[str, dict[str, str]] = {}
        if isinstance(raw, dict):
            for language, entries in raw.items():
                if isinstance(entries, dict):
                    table[str(language)] = {str(k): str(v) for k, v in entries.items() if isinstance(v, str)}
        with self._lock:
            self._texts[theme_id] = table
        return table

    def lookup_text(self, theme_id: str, key: str, language: str) -> str | None:
        for table_id in (theme_id, MASTER_THEME_ID):
            table = self._text_table(table_id)
            for lang in (language, DEFAULT_LANGUAGE):
                value = table.get(lang, {}).get(key)
                if value is not None:
                    return value
        return None

    def get_text(self, theme_id: str, key: str, language: str = DEFAULT_LANGUAGE, **replacements: object) -> str:
        value = self.lookup_text(theme_id, key, language)
        text = key if value is None else value
        for name, replacement in replacements.items():
            text = text.replace(f"{{{name}}}", str(replacement))
        return text

    def narrative_language_instruction(self, theme_id: str, language: str) -> str:
        config = self.get_config(theme_id)
        parts = config.narrative_language_prompts if config else {}
        return parts.get(language) or parts.get(DEFAULT_LANGUAGE) or f"Narrative must be in {language.upper()}."

    def get_traits(self, theme_id: str) -> dict[str, TraitDefinition]:
        with self._lock:
            if theme_id in self._traits:
                return self._traits[theme_id]
        raw = self._read_json(self.root / theme_id / "traits.json")
        traits: dict[str, TraitDefinition] = {}
        if isinstance(raw, dict):
            for trait_key, definition in raw.items():
                try:
                    traits[str(trait_key)] = TraitDefinition.model_validate(definition)
                except ValidationError as exc:
                    logger.warning("trait rejected theme_id=%s trait=%s err=%s", theme_id, trait_key, exc)
        with self._lock:
            self._traits[theme_id] = traits
        return traits

    def theme_ids(self) -> list[str]:
        if not self.root.is_dir():
            return []
        return sorted(
            path.name
            for path in self.root.iterdir()
            if path.is_dir() and path.name != MASTER_THEME_ID and (path / "config.json").is_file()
        )

    def list_themes(self) -> list[ThemeConfig]:
        configs = [self.get_config(theme_id) for theme_id in self.theme_ids()]
        return [config for config in configs if config is not None]


@lru_cache(maxsize=1)
def get_theme_store() -> ThemeStore:
    return ThemeStore(settings.themes_dir)
