from __future__ import annotations

from fastapi import APIRouter, Depends

from narrator.modules.theme.schemas import ThemeSummaryOut
from narrator.modules.theme.store import ThemeStore, get_theme_store

router = APIRouter(prefix="/api/v1/themes", tags=["themes"])


@router.get("", response_model=list[ThemeSummaryOut])
def list_themes(language: str = "en", store: ThemeStore = Depends(get_theme_store)) -> list[ThemeSummaryOut]:
    out: list[ThemeSummaryOut] = []
    for config in store.list_themes():
        indicators = config.dashboard_config.game_state_indicators or []
        out.append(
            ThemeSummaryOut(
                id=config.id,
                name=store.get_text(config.id, config.name_key, language),
                lore=store.get_text(config.id, config.lore_key, language),
                playable=config.playable,
                trait_keys=sorted(store.get_traits(config.id)),
                prompt_types=[ind.id for ind in indicators if store.has_valid_prompt(config.id, ind.id)],
            )
        )
    return out
