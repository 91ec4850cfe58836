import logging
from typing import Any, Dict, List, Optional

from models.schemas import DEFAULT_LANGUAGE, Recipe, ScaledRecipe
from services import recipe_scaler
from services.errors import RecipeNotFoundError
from services.recipe_generator_service import RecipeGeneratorService
from services.recipe_normalizer import normalize_recipe
from services.taste_profile_service import TasteProfileService

# Configure logging
logger = logging.getLogger(__name__)


class RecipeService:
    """In-memory recipe store; new recipes come from the generator or from clients."""

    def __init__(self, generator: RecipeGeneratorService, taste_profile: TasteProfileService):
        self._recipes: Dict[str, Recipe] = {}
        self.generator = generator
        self.taste_profile = taste_profile

    def generate_recipe(self, prompt: str, language: str = DEFAULT_LANGUAGE, title: Optional[str] = None) -> Recipe:
        """Generate a recipe biased by the taste profile and store it."""
        enhanced_prompt = self.taste_profile.enhance_prompt(prompt)
        recipe = self.generator.generate(enhanced_prompt, language=language, title=title)
        # Keep the user's own words as the recipe prompt
        recipe = recipe.model_copy(update={"prompt": prompt})
        self._recipes[recipe.id] = recipe
        logger.info(f"Stored generated recipe {recipe.id}: {recipe.title} ({len(recipe.steps)} steps)")
        return recipe

    def create_recipe(self, data: Dict[str, Any]) -> Recipe:
        recipe = normalize_recipe(
            data,
            prompt=data.get("prompt", ""),
            language=data.get("language") or DEFAULT_LANGUAGE,
        )
        self._recipes[recipe.id] = recipe
        logger.info(f"Stored recipe {recipe.id}: {recipe.title}")
        return recipe

    def get_recipe(self, recipe_id: str) -> Recipe:
        recipe = self._recipes.get(recipe_id)
        if recipe is None:
            logger.error(f"Recipe not found: {recipe_id}")
            raise RecipeNotFoundError(recipe_id)
        return recipe

    def list_recipes(self) -> List[Recipe]:
        return list(self._recipes.values())

    def delete_recipe(self, recipe_id: str) -> bool:
        if recipe_id in self._recipes:
            del self._recipes[recipe_id]
            return True
        return False

    def get_scaled_recipe(self, recipe_id: str, servings: Optional[int]) -> ScaledRecipe:
        return recipe_scaler.scale(self.get_recipe(recipe_id), servings)
