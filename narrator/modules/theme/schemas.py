from typing import Any

from pydantic import BaseModel, ConfigDict, Field

PANEL_TYPE_STATIC = "static"
PANEL_TYPE_COLLAPSIBLE = "collapsible"
PANEL_TYPE_HIDDEN_UNTIL_ACTIVE = "hidden_until_active"


class DashboardItem(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str
    type: str = "text"
    label_key: str | None = None
    short_description: str | None = None
    must_translate: bool = False
    status_text_id: str | None = None
    default_value_key: str | None = None
    default_value: Any = None

    @property
    def has_default_value(self) -> bool:
        return "default_value" in self.model_fields_set


class DashboardPanel(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str
    type: str = PANEL_TYPE_STATIC
    title_key: str | None = None
    indicator_key: str | None = None
    initial_expanded: bool = False
    items: list[DashboardItem] = Field(default_factory=list)


class GameStateIndicator(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str
    short_description: str | None = None
    default_value: bool | None = None
    priority: int = 0


class DashboardConfig(BaseModel):
    left_panel: list[DashboardPanel] = Field(default_factory=list)
    right_panel: list[DashboardPanel] = Field(default_factory=list)
    # None means the theme does not describe indicators at all.
    game_state_indicators: list[GameStateIndicator] | None = None

    def panels(self) -> list[DashboardPanel]:
        return [*self.left_panel, *self.right_panel]

    def items(self) -> list[DashboardItem]:
        return [item for panel in self.panels() for item in panel.items]


class BaseAttributes(BaseModel):
    integrity: int = 100
    willpower: int = 50
    aptitude: int = 50
    resilience: int = 50


class TraitDefinition(BaseModel):
    model_config = ConfigDict(extra="allow")

    name_key: str
    description_key: str


class ThemeConfig(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str
    name_key: str
    lore_key: str
    category_key: str | None = None
    style_key: str | None = None
    tone_key: str | None = None
    inspiration_key: str | None = None
    concept_key: str | None = None
    playable: bool = True
    base_attributes: BaseAttributes = Field(default_factory=BaseAttributes)
    dashboard_config: DashboardConfig = Field(default_factory=DashboardConfig)
    narrative_language_prompts: dict[str, str] = Field(default_factory=dict)


class ThemeSummaryOut(BaseModel):
    id: str
    name: str
    lore: str
    playable: bool
    trait_keys: list[str] = Field(default_factory=list)
    prompt_types: list[str] = Field(default_factory=list)
