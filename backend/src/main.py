from contextlib import asynccontextmanager
from typing import Optional
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.routes import init_router
from config import Settings, get_settings
from services.cooking_session_service import CookSessionService
from services.recipe_generator_service import RecipeGeneratorService
from services.recipe_service import RecipeService
from services.scheduler import AsyncioScheduler
from services.speech_output_service import SpeechOptions, create_speech_output
from services.taste_profile_service import TasteProfileService
from services.voice_command_service import RetryPolicy, SpeechRecognitionEngine

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def build_cook_session_service(settings: Settings, taste_profile_service: TasteProfileService) -> CookSessionService:
    return CookSessionService(
        speech_factory=lambda scheduler: create_speech_output(scheduler, settings),
        recognition_factory=SpeechRecognitionEngine,
        scheduler_factory=AsyncioScheduler,
        rating_sink=taste_profile_service.add_rating,
        retry_policy=RetryPolicy(
            max_attempts=settings.listener_max_attempts,
            min_interval=settings.listener_min_interval,
        ),
        speech_options=SpeechOptions(rate=settings.speech_rate),
        next_step_delay=settings.next_step_delay,
    )


def create_app(
    settings: Optional[Settings] = None,
    recipe_service: Optional[RecipeService] = None,
    cook_session_service: Optional[CookSessionService] = None,
    taste_profile_service: Optional[TasteProfileService] = None,
) -> FastAPI:
    settings = settings or get_settings()
    taste_profile_service = taste_profile_service or TasteProfileService()
    if recipe_service is None:
        generator = RecipeGeneratorService(settings.mistral_api_key, model=settings.mistral_model)
        recipe_service = RecipeService(generator, taste_profile_service)
    cook_session_service = cook_session_service or build_cook_session_service(settings, taste_profile_service)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        logger.info("Shutting down, closing cooking sessions")
        cook_session_service.close_all()

    app = FastAPI(title="CookMode API", version="1.0.0", lifespan=lifespan)

    # Configure CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(
        init_router(recipe_service, cook_session_service, taste_profile_service),
        prefix="/api",
    )

    @app.get("/api/health")
    async def health_check():
        return {
            "status": "healthy",
            "mistral_api_key_configured": bool(settings.mistral_api_key),
            "eleven_labs_api_key_configured": bool(settings.eleven_labs_api_key),
        }

    return app


app = create_app()

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000, log_level="info")
