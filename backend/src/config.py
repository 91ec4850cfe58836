import os
from dataclasses import dataclass, field
from functools import lru_cache
from typing import List, Optional

from dotenv import load_dotenv

from models.schemas import DEFAULT_LANGUAGE

# Load environment variables from .env if present
load_dotenv()


def _get_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}")


def _get_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}")


@dataclass
class Settings:
    """Application settings resolved from the environment.

    API keys are optional here. Code that needs a missing key fails where it is
    used, so the cooking session still works without the LLM or cloud voice.
    """

    mistral_api_key: Optional[str] = None
    mistral_model: str = "mistral-small-latest"
    eleven_labs_api_key: Optional[str] = None
    eleven_labs_voice_id: str = "EXAVITQu4vr4xnSDxMaL"
    eleven_labs_model_id: str = "eleven_flash_v2_5"
    default_language: str = DEFAULT_LANGUAGE
    speech_rate: float = 0.9
    listener_max_attempts: int = 5
    listener_min_interval: float = 1.0
    next_step_delay: float = 0.3
    audio_player: Optional[str] = None
    cors_origins: List[str] = field(default_factory=lambda: ["http://localhost:5173"])


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    cors = os.getenv("COOKMODE_CORS_ORIGINS", "http://localhost:5173")
    return Settings(
        mistral_api_key=os.getenv("MISTRAL_API_KEY") or None,
        mistral_model=os.getenv("MISTRAL_MODEL", "mistral-small-latest"),
        eleven_labs_api_key=os.getenv("ELEVEN_LABS_API_KEY") or None,
        eleven_labs_voice_id=os.getenv("ELEVEN_LABS_VOICE_ID", "EXAVITQu4vr4xnSDxMaL"),
        eleven_labs_model_id=os.getenv("ELEVEN_LABS_MODEL_ID", "eleven_flash_v2_5"),
        default_language=os.getenv("COOKMODE_DEFAULT_LANGUAGE", DEFAULT_LANGUAGE),
        speech_rate=_get_float("COOKMODE_SPEECH_RATE", 0.9),
        listener_max_attempts=_get_int("COOKMODE_LISTENER_MAX_ATTEMPTS", 5),
        listener_min_interval=_get_float("COOKMODE_LISTENER_MIN_INTERVAL", 1.0),
        next_step_delay=_get_float("COOKMODE_NEXT_STEP_DELAY", 0.3),
        audio_player=os.getenv("COOKMODE_AUDIO_PLAYER") or None,
        cors_origins=[origin.strip() for origin in cors.split(",") if origin.strip()],
    )
