from fastapi import APIRouter, Body, HTTPException
import logging
from typing import Any, Dict, List, Optional

from models.schemas import (
    GenerateRecipeRequest, Recipe, ScaledRecipe, ServingsRequest,
    SessionPhase, SessionSnapshot, StartSessionRequest, TasteProfile, TasteRating
)
from services.cooking_session_service import CookingSessionController, CookSessionService
from services.errors import (
    EmptyRecipeError, RecipeGenerationError, RecipeNotFoundError,
    SessionNotFoundError, SessionStateError
)
from services.recipe_service import RecipeService
from services.taste_profile_service import TasteProfileService

logger = logging.getLogger(__name__)


def init_router(
    recipe_service: RecipeService,
    cook_session_service: CookSessionService,
    taste_profile_service: TasteProfileService
) -> APIRouter:
    router = APIRouter()

    def get_session(session_id: str) -> CookingSessionController:
        try:
            return cook_session_service.get_session(session_id)
        except SessionNotFoundError:
            raise HTTPException(status_code=404, detail="Cooking session not found")

    @router.post("/recipes/generate", response_model=Recipe)
    async def generate_recipe(request: GenerateRecipeRequest):
        if not request.prompt.strip():
            raise HTTPException(status_code=400, detail="Prompt is required")
        try:
            return recipe_service.generate_recipe(request.prompt, request.language)
        except RecipeGenerationError as e:
            logger.exception("Error generating recipe")
            raise HTTPException(status_code=502, detail=str(e))

    @router.post("/recipes", response_model=Recipe, status_code=201)
    async def create_recipe(data: Dict[str, Any] = Body(...)):
        return recipe_service.create_recipe(data)

    @router.get("/recipes", response_model=List[Recipe])
    async def list_recipes():
        return recipe_service.list_recipes()

    @router.get("/recipes/{recipe_id}", response_model=Recipe)
    async def get_recipe(recipe_id: str):
        logger.info(f"Getting recipe with ID: {recipe_id}")
        try:
            return recipe_service.get_recipe(recipe_id)
        except RecipeNotFoundError:
            raise HTTPException(status_code=404, detail="Recipe not found")

    @router.get("/recipes/{recipe_id}/scaled", response_model=ScaledRecipe)
    async def get_scaled_recipe(recipe_id: str, servings: Optional[int] = None):
        try:
            return recipe_service.get_scaled_recipe(recipe_id, servings)
        except RecipeNotFoundError:
            raise HTTPException(status_code=404, detail="Recipe not found")

    @router.delete("/recipes/{recipe_id}")
    async def delete_recipe(recipe_id: str):
        if not recipe_service.delete_recipe(recipe_id):
            raise HTTPException(status_code=404, detail="Recipe not found")
        return {"message": "Recipe deleted successfully"}

    @router.post("/cook/sessions", response_model=SessionSnapshot, status_code=201)
    async def start_cooking(request: StartSessionRequest):
        try:
            recipe = recipe_service.get_recipe(request.recipe_id)
            session = cook_session_service.start_session(recipe, request.servings, request.language)
        except RecipeNotFoundError:
            raise HTTPException(status_code=404, detail="Recipe not found")
        except EmptyRecipeError as e:
            raise HTTPException(status_code=400, detail=str(e))
        return session.snapshot()

    @router.get("/cook/sessions/{session_id}", response_model=SessionSnapshot)
    async def get_cooking_session(session_id: str):
        return get_session(session_id).snapshot()

    @router.post("/cook/sessions/{session_id}/start", response_model=SessionSnapshot)
    async def resume_cooking(session_id: str):
        session = get_session(session_id)
        try:
            session.start()
        except EmptyRecipeError as e:
            raise HTTPException(status_code=400, detail=str(e))
        except SessionStateError as e:
            raise HTTPException(status_code=409, detail=str(e))
        return session.snapshot()

    @router.post("/cook/sessions/{session_id}/start-timer", response_model=SessionSnapshot)
    async def start_timer(session_id: str):
        session = get_session(session_id)
        session.start_timer()
        return session.snapshot()

    @router.post("/cook/sessions/{session_id}/skip", response_model=SessionSnapshot)
    async def skip_step(session_id: str):
        session = get_session(session_id)
        session.skip()
        return session.snapshot()

    @router.post("/cook/sessions/{session_id}/restart-timer", response_model=SessionSnapshot)
    async def restart_timer(session_id: str):
        session = get_session(session_id)
        session.restart_timer()
        return session.snapshot()

    @router.post("/cook/sessions/{session_id}/restart", response_model=SessionSnapshot)
    async def restart_recipe(session_id: str):
        session = get_session(session_id)
        if session.phase == SessionPhase.IDLE:
            raise HTTPException(status_code=409, detail="Cooking has not started; use start instead")
        session.restart()
        return session.snapshot()

    @router.post("/cook/sessions/{session_id}/stop", response_model=SessionSnapshot)
    async def stop_cooking(session_id: str):
        session = get_session(session_id)
        session.stop()
        return session.snapshot()

    @router.post("/cook/sessions/{session_id}/dismiss-notice", response_model=SessionSnapshot)
    async def dismiss_notice(session_id: str):
        session = get_session(session_id)
        session.dismiss_notice()
        return session.snapshot()

    @router.post("/cook/sessions/{session_id}/servings", response_model=SessionSnapshot)
    async def set_servings(session_id: str, request: ServingsRequest):
        session = get_session(session_id)
        try:
            session.set_servings(request.servings)
        except SessionStateError as e:
            raise HTTPException(status_code=409, detail=str(e))
        return session.snapshot()

    @router.post("/cook/sessions/{session_id}/rating", response_model=SessionSnapshot)
    async def submit_rating(session_id: str, rating: TasteRating):
        session = get_session(session_id)
        session.submit_rating(rating)
        return session.snapshot()

    @router.post("/cook/sessions/{session_id}/rating/decline", response_model=SessionSnapshot)
    async def decline_rating(session_id: str):
        session = get_session(session_id)
        session.decline_rating()
        return session.snapshot()

    @router.delete("/cook/sessions/{session_id}")
    async def end_cooking_session(session_id: str):
        try:
            cook_session_service.end_session(session_id)
        except SessionNotFoundError:
            raise HTTPException(status_code=404, detail="Cooking session not found")
        return {"message": "Cooking session ended"}

    @router.get("/taste-profile", response_model=TasteProfile)
    async def get_taste_profile():
        return taste_profile_service.get_profile()

    return router
