"""Turn loosely shaped recipe JSON (usually LLM output) into a ``Recipe``.

Models and clients disagree on field names: a step may be a plain string or
an object with ``instruction``/``step``/``action``, and its duration may be
``estimateSeconds``, ``duration``, ``minutes`` or a phrase like "5 min".
Anything that cannot be read as a duration becomes a step without a timer.
"""
import json
import logging
import math
import re
from typing import Any, Dict, List, Optional

from models.schemas import DEFAULT_LANGUAGE, Recipe, Step

logger = logging.getLogger(__name__)

MINUTES_PATTERN = re.compile(r"(\d+)\s*min")
SECONDS_PATTERN = re.compile(r"(\d+)\s*sec")

_INSTRUCTION_KEYS = ("instruction", "step", "action", "description")
_SECONDS_KEYS = ("estimateSeconds", "timeSeconds", "duration")


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def _step_seconds(raw: Dict[str, Any]) -> int:
    for key in _SECONDS_KEYS:
        if _is_number(raw.get(key)):
            return max(int(round(raw[key])), 0)
    if _is_number(raw.get("minutes")):
        return max(int(round(raw["minutes"] * 60)), 0)
    if _is_number(raw.get("secs")):
        return max(int(round(raw["secs"])), 0)
    if isinstance(raw.get("time"), str):
        match = MINUTES_PATTERN.search(raw["time"])
        if match:
            return int(match.group(1)) * 60
        match = SECONDS_PATTERN.search(raw["time"])
        if match:
            return int(match.group(1))
    return 0


def normalize_step(raw: Any) -> Optional[Step]:
    """Normalize one raw step; returns None for empty entries."""
    if not raw:
        return None
    if isinstance(raw, str):
        return Step(instruction=raw.strip(), estimate_seconds=0)
    if isinstance(raw, dict):
        instruction = next((raw[k] for k in _INSTRUCTION_KEYS if isinstance(raw.get(k), str) and raw[k]), None)
        if instruction is None:
            instruction = json.dumps(raw)
        return Step(instruction=instruction, estimate_seconds=_step_seconds(raw))
    logger.warning(f"Skipping step of unexpected type {type(raw).__name__}")
    return None


def normalize_steps(raw_steps: Any) -> List[Step]:
    if isinstance(raw_steps, str):
        return [Step(instruction=line.strip()) for line in raw_steps.splitlines() if line.strip()]
    if not isinstance(raw_steps, list):
        return []
    steps = []
    for raw in raw_steps:
        step = normalize_step(raw)
        if step is not None:
            steps.append(step)
    return steps


def normalize_ingredients(raw_ingredients: Any) -> List[str]:
    if isinstance(raw_ingredients, list):
        return [i if isinstance(i, str) else json.dumps(i) for i in raw_ingredients]
    if isinstance(raw_ingredients, str):
        parts = re.split(r"\r?\n|,", raw_ingredients)
        return [p.strip() for p in parts if p.strip()]
    return []


def _servings(parsed: Dict[str, Any]) -> int:
    for key in ("servings", "originalServings"):
        value = parsed.get(key)
        if _is_number(value) and value > 0:
            return int(value)
    return 2


def normalize_recipe(
    parsed: Any,
    prompt: str = "",
    title_fallback: Optional[str] = None,
    language: str = DEFAULT_LANGUAGE,
) -> Recipe:
    """Build a ``Recipe`` from a parsed JSON object of unknown shape."""
    if not isinstance(parsed, dict):
        parsed = {}
    title = next((parsed[k] for k in ("title", "name", "recipeTitle") if parsed.get(k)), None)
    return Recipe(
        title=title or title_fallback or "Generated Recipe",
        summary=parsed.get("summary") or parsed.get("description") or "",
        prompt=prompt or parsed.get("prompt") or "",
        language=parsed.get("language") or language,
        ingredients=normalize_ingredients(parsed.get("ingredients")),
        steps=normalize_steps(parsed.get("steps")),
        original_servings=_servings(parsed),
    )


def extract_json(text: str) -> Optional[Any]:
    """Parse model output that should be JSON, tolerating prose or code fences around it."""
    if not text:
        return None
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        pass
    for pattern in (r"\{[\s\S]*\}", r"\[[\s\S]*\]"):
        match = re.search(pattern, text)
        if match:
            try:
                return json.loads(match.group(0))
            except json.JSONDecodeError:
                logger.warning("Found JSON-looking text in model output but could not parse it")
                return None
    return None
