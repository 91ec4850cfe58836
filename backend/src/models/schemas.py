import uuid
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

DEFAULT_LANGUAGE = "en-IN"


class Step(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    instruction: str
    estimate_seconds: int = Field(0, ge=0, alias="estimateSeconds")
    original_seconds: Optional[int] = Field(None, alias="originalSeconds")

    @property
    def has_timer(self) -> bool:
        return self.estimate_seconds > 0


class Recipe(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    title: str = "Generated Recipe"
    summary: str = ""
    prompt: str = ""
    language: str = DEFAULT_LANGUAGE
    ingredients: List[str] = Field(default_factory=list)
    steps: List[Step] = Field(default_factory=list)
    original_servings: int = Field(2, gt=0, alias="originalServings")


class ScaledRecipe(Recipe):
    current_servings: int = Field(alias="currentServings")
    scale_factor: float = Field(1.0, gt=0, alias="scaleFactor")
    time_adjustment: str = Field("", alias="timeAdjustment")


class SessionPhase(str, Enum):
    IDLE = "idle"
    SPEAKING = "speaking"
    WAITING_FOR_START = "waiting_for_start"
    TIMER_RUNNING = "timer_running"
    COMPLETE = "complete"


class ListenerState(str, Enum):
    IDLE = "idle"
    LISTENING = "listening"
    MANUAL_ONLY = "manual_only"
    FAILED = "failed"


class TasteRating(BaseModel):
    sweet: int = Field(0, ge=0, le=5)
    salty: int = Field(0, ge=0, le=5)
    spicy: int = Field(0, ge=0, le=5)
    sour: int = Field(0, ge=0, le=5)
    bitter: int = Field(0, ge=0, le=5)
    umami: int = Field(0, ge=0, le=5)
    notes: str = ""


class TasteProfile(BaseModel):
    sweet: float = 0.0
    salty: float = 0.0
    spicy: float = 0.0
    sour: float = 0.0
    bitter: float = 0.0
    umami: float = 0.0
    ratings_count: int = Field(0, alias="ratingsCount")

    model_config = ConfigDict(populate_by_name=True)


class GenerateRecipeRequest(BaseModel):
    prompt: str
    language: str = DEFAULT_LANGUAGE


class StartSessionRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    recipe_id: str = Field(alias="recipeId")
    servings: Optional[int] = None
    language: Optional[str] = None


class SessionSnapshot(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    session_id: str = Field(alias="sessionId")
    recipe_id: str = Field(alias="recipeId")
    phase: SessionPhase
    step_index: int = Field(alias="stepIndex")
    total_steps: int = Field(alias="totalSteps")
    current_instruction: Optional[str] = Field(None, alias="currentInstruction")
    remaining_seconds: int = Field(0, alias="remainingSeconds")
    listener_active: bool = Field(False, alias="listenerActive")
    listener_state: ListenerState = Field(ListenerState.IDLE, alias="listenerState")
    notice: Optional[str] = None
    rating_prompt_pending: bool = Field(False, alias="ratingPromptPending")
    language: str = DEFAULT_LANGUAGE
    servings: int


class ServingsRequest(BaseModel):
    servings: int
