import json
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest

from services.errors import RecipeGenerationError
from services.recipe_generator_service import RecipeGeneratorService
from services.recipe_service import RecipeService
from services.taste_profile_service import TasteProfileService
from models.schemas import TasteRating


def chat_response(content):
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])


@pytest.fixture
def client():
    client = MagicMock()
    client.chat.complete.return_value = chat_response(json.dumps({
        "title": "Paneer Tikka",
        "servings": 2,
        "ingredients": ["300g paneer"],
        "steps": [{"instruction": "Marinate", "estimateSeconds": 600}, "Grill"],
    }))
    return client


def test_generate_normalizes_model_output(client):
    generator = RecipeGeneratorService(api_key=None, client=client)
    recipe = generator.generate("paneer tikka", language="hi-IN")

    assert recipe.title == "Paneer Tikka"
    assert recipe.language == "hi-IN"
    assert [s.estimate_seconds for s in recipe.steps] == [600, 0]

    kwargs = client.chat.complete.call_args.kwargs
    assert kwargs["model"] == "mistral-small-latest"
    assert "Hindi" in kwargs["messages"][0]["content"]
    assert kwargs["messages"][1]["content"] == "paneer tikka"


def test_non_json_output_becomes_summary(client):
    client.chat.complete.return_value = chat_response("Sorry, I can only talk about cooking.")
    generator = RecipeGeneratorService(api_key=None, client=client)

    recipe = generator.generate("something", title="Fallback")

    assert recipe.title == "Fallback"
    assert recipe.summary == "Sorry, I can only talk about cooking."
    assert recipe.steps == []


def test_api_failure_raises_generation_error(client):
    client.chat.complete.side_effect = RuntimeError("503 Service Unavailable")
    generator = RecipeGeneratorService(api_key=None, client=client)

    with pytest.raises(RecipeGenerationError):
        generator.generate("dal")


def test_missing_api_key_raises_generation_error():
    generator = RecipeGeneratorService(api_key=None)
    with pytest.raises(RecipeGenerationError):
        generator.generate("dal")


def test_empty_prompt_rejected(client):
    generator = RecipeGeneratorService(api_key=None, client=client)
    with pytest.raises(ValueError):
        generator.generate("   ")


def test_recipe_service_biases_prompt_with_taste_profile(client):
    taste_profile = TasteProfileService()
    taste_profile.add_rating(TasteRating(spicy=5))
    service = RecipeService(RecipeGeneratorService(api_key=None, client=client), taste_profile)

    recipe = service.generate_recipe("paneer tikka")

    sent = client.chat.complete.call_args.kwargs["messages"][1]["content"]
    assert sent == "Create a recipe for someone with these taste preferences: spicy: 5. paneer tikka"
    assert recipe.prompt == "paneer tikka"
    assert service.get_recipe(recipe.id) == recipe
