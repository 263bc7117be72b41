from pydantic import BaseModel, ConfigDict, Field


class SessionCreateRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    theme_id: str | None = None
    narrative_language: str | None = None
    resume: bool = False


class NewGameRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    use_evolved_world: bool = False


class IdentifierRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    identifier: str


class ActionRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    text: str


class ChoiceRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    choice_id: str = Field(min_length=1)


class DeepDiveRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    title: str = Field(min_length=1)
    content: str = Field(min_length=1)
    key_suggestion: str = ""
    unlock_condition_description: str = ""


class SuggestedActionOut(BaseModel):
    text: str
    display_text: str
    description: str = ""
    choice_id: str | None = None
    kind: str = "action"


class PanelTransitionOut(BaseModel):
    panel_id: str
    indicator_key: str
    visible: bool
    changed: bool


class OutcomeErrorOut(BaseModel):
    kind: str
    message: str


class TurnOutcomeOut(BaseModel):
    narrative: str | None = None
    system_messages: list[str] = Field(default_factory=list)
    suggested_actions: list[SuggestedActionOut] = Field(default_factory=list)
    panel_transitions: list[PanelTransitionOut] = Field(default_factory=list)
    xp_awarded: int = 0
    leveled_up: bool = False
    input_enabled: bool = True
    awaiting_identifier: bool = False
    error: OutcomeErrorOut | None = None


class SessionViewOut(BaseModel):
    theme_id: str
    player_identifier: str
    narrative_language: str
    model_name: str
    dashboard: dict = Field(default_factory=dict)
    indicators: dict = Field(default_factory=dict)
    suggested_actions: list[SuggestedActionOut] = Field(default_factory=list)
    progress: dict = Field(default_factory=dict)
    run_stats: dict = Field(default_factory=dict)
    prompt_type: str
    is_initial_load: bool
    input_enabled: bool
    input_placeholder: str
    awaiting_identifier: bool
    progression_step: str
    panel_states: dict[str, bool] = Field(default_factory=dict)
    history_length: int
    is_processing: bool


class SessionCreateOut(BaseModel):
    id: str
    outcome: TurnOutcomeOut
    state: SessionViewOut


class SessionStepOut(BaseModel):
    id: str
    outcome: TurnOutcomeOut
    state: SessionViewOut


class SessionSaveOut(BaseModel):
    id: str
    saved: bool
