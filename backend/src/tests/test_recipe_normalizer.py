from services.recipe_normalizer import extract_json, normalize_recipe, normalize_step


def test_canonical_recipe():
    recipe = normalize_recipe(
        {
            "title": "Paneer Tikka",
            "summary": "Smoky grilled paneer",
            "servings": 4,
            "ingredients": ["300g paneer", "1 cup yogurt"],
            "steps": [{"instruction": "Marinate", "estimateSeconds": 600}],
        },
        prompt="paneer",
    )

    assert recipe.title == "Paneer Tikka"
    assert recipe.original_servings == 4
    assert recipe.prompt == "paneer"
    assert recipe.steps[0].instruction == "Marinate"
    assert recipe.steps[0].estimate_seconds == 600


def test_alternate_duration_fields():
    assert normalize_step({"step": "Boil", "timeSeconds": 90}).estimate_seconds == 90
    assert normalize_step({"action": "Boil", "duration": 45}).estimate_seconds == 45
    assert normalize_step({"description": "Boil", "minutes": 2.5}).estimate_seconds == 150
    assert normalize_step({"instruction": "Boil", "secs": 12}).estimate_seconds == 12


def test_time_phrases():
    assert normalize_step({"instruction": "Simmer", "time": "5 minutes"}).estimate_seconds == 300
    assert normalize_step({"instruction": "Stir", "time": "30 sec"}).estimate_seconds == 30
    assert normalize_step({"instruction": "Rest", "time": "a while"}).estimate_seconds == 0


def test_malformed_durations_become_untimed():
    assert normalize_step({"instruction": "Stir", "estimateSeconds": "soon"}).estimate_seconds == 0
    assert normalize_step({"instruction": "Stir", "duration": None}).estimate_seconds == 0
    assert normalize_step({"instruction": "Stir", "duration": float("nan")}).estimate_seconds == 0
    assert normalize_step({"instruction": "Stir", "duration": -20}).estimate_seconds == 0


def test_string_steps_have_no_timer():
    step = normalize_step("Chop the onions")
    assert step.instruction == "Chop the onions"
    assert step.estimate_seconds == 0


def test_object_without_instruction_keeps_its_json():
    step = normalize_step({"foo": "bar"})
    assert step.instruction == '{"foo": "bar"}'


def test_empty_steps_are_dropped():
    recipe = normalize_recipe({"steps": ["Boil water", None, "", {"instruction": "Add salt"}]})
    assert [s.instruction for s in recipe.steps] == ["Boil water", "Add salt"]


def test_string_fields_are_split():
    recipe = normalize_recipe({
        "name": "Chai",
        "description": "Spiced tea",
        "ingredients": "2 cups milk, 1 tsp tea\n2 cardamom pods",
        "steps": "Boil milk\n\nAdd tea",
    })

    assert recipe.title == "Chai"
    assert recipe.summary == "Spiced tea"
    assert recipe.ingredients == ["2 cups milk", "1 tsp tea", "2 cardamom pods"]
    assert [s.instruction for s in recipe.steps] == ["Boil milk", "Add tea"]


def test_non_string_ingredients_are_serialized():
    recipe = normalize_recipe({"ingredients": [{"item": "salt"}, "pepper"]})
    assert recipe.ingredients == ['{"item": "salt"}', "pepper"]


def test_defaults_for_missing_fields():
    recipe = normalize_recipe(None, title_fallback="Mystery")
    assert recipe.title == "Mystery"
    assert recipe.steps == []
    assert recipe.original_servings == 2


def test_extract_json_from_prose():
    text = 'Here is your recipe:\n```json\n{"title": "Dal"}\n```\nEnjoy!'
    assert extract_json(text) == {"title": "Dal"}
    assert extract_json('{"title": "Dal"}') == {"title": "Dal"}
    assert extract_json("no json here") is None
    assert extract_json("") is None
