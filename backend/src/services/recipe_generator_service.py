import logging
from typing import Optional

from mistralai import Mistral

from models.schemas import DEFAULT_LANGUAGE, Recipe
from services import languages
from services.errors import RecipeGenerationError
from services.recipe_normalizer import extract_json, normalize_recipe

logger = logging.getLogger(__name__)

SYSTEM_TEMPLATE = """You are a recipe generator. You MUST respond in {language} language. Respond ONLY with valid JSON in this exact format:
{{
  "title": "string (in {language})",
  "summary": "short summary (in {language})",
  "servings": 2,
  "ingredients": ["300g ingredient 1 (in {language})", "2 cups ingredient 2 (in {language})"],
  "steps": [
    {{"instruction": "step text (in {language})", "estimateSeconds": 120}}
  ]
}}
IMPORTANT:
- All text fields (title, summary, ingredients, instructions) MUST be in {language} language.
- Include quantities with units in ingredients (e.g., "300g paneer", "2 cups rice", "1 tbsp oil").
- Set servings to 2 by default.
- Provide realistic cooking times in estimateSeconds, use 0 for steps that need no timer.
Return only the JSON object with no extra commentary."""


class RecipeGeneratorService:
    """Generates structured recipes with the Mistral chat API."""

    def __init__(self, api_key: Optional[str], model: str = "mistral-small-latest", client: Optional[Mistral] = None):
        self.model = model
        self.client = client
        if self.client is None and api_key:
            self.client = Mistral(api_key=api_key)
        if self.client is None:
            logger.warning("MISTRAL_API_KEY not found in environment variables, recipe generation disabled")

    def generate(self, prompt: str, language: str = DEFAULT_LANGUAGE, title: Optional[str] = None) -> Recipe:
        """Ask the model for a recipe and normalize whatever JSON it returns."""
        if not prompt or not prompt.strip():
            raise ValueError("Prompt is required")
        if self.client is None:
            raise RecipeGenerationError("Recipe generation is not configured (missing MISTRAL_API_KEY)")

        target_language = languages.get_language_name(language)
        logger.info(f"Generating recipe in {target_language}: {prompt[:100]}")
        try:
            response = self.client.chat.complete(
                model=self.model,
                messages=[
                    {"role": "system", "content": SYSTEM_TEMPLATE.format(language=target_language)},
                    {"role": "user", "content": prompt},
                ],
                temperature=0.7,
                response_format={"type": "json_object"},
            )
            content = response.choices[0].message.content
        except Exception as e:
            logger.error(f"Error getting Mistral response: {e}")
            raise RecipeGenerationError(f"Failed to generate recipe: {e}") from e

        logger.info(f"Got response from Mistral: {str(content)[:100]}...")
        parsed = extract_json(content if isinstance(content, str) else "")
        if parsed is None:
            logger.warning("Model output was not JSON, storing it as the recipe summary")
            return Recipe(
                title=title or "Generated Recipe",
                summary=content if isinstance(content, str) else "",
                prompt=prompt,
                language=language,
            )
        return normalize_recipe(parsed, prompt=prompt, title_fallback=title, language=language)
