"""Serving-size scaling for recipes.

Ingredient quantities scale linearly with the serving count. Step durations do
not: cooking a double batch does not take twice as long, so durations follow a
logarithmic curve (roughly +20% per doubling, -10% per halving).
"""
import logging
import math
import re
from typing import List, Optional, Tuple

from models.schemas import Recipe, ScaledRecipe, Step
from services import languages

logger = logging.getLogger(__name__)

# Heuristic coefficients for the time curve, tunable
TIME_GROWTH_PER_DOUBLING = 0.2
TIME_SHRINK_PER_HALVING = 0.1

FRACTION_TOLERANCE = 0.05

COMMON_FRACTIONS: List[Tuple[float, str]] = [
    (whole + value, f"{whole} {label}" if whole else label)
    for whole in (0, 1, 2)
    for value, label in (
        (1 / 4, "1/4"),
        (1 / 3, "1/3"),
        (1 / 2, "1/2"),
        (2 / 3, "2/3"),
        (3 / 4, "3/4"),
    )
]

# Order matters: the first pattern that matches wins.
MIXED_FRACTION_PATTERN = re.compile(r"^(\d+)\s+(\d+)/(\d+)(\s*)([a-zA-Z]+)?\s+(.+)$", re.ASCII)
FRACTION_PATTERN = re.compile(r"^(\d+)/(\d+)(\s*)([a-zA-Z]+)?\s+(.+)$", re.ASCII)
RANGE_PATTERN = re.compile(r"^(\d+\.?\d*)-(\d+\.?\d*)(\s*)([a-zA-Z]+)?\s+(.+)$", re.ASCII)
DECIMAL_PATTERN = re.compile(r"^(\d+\.?\d*)(\s*)([a-zA-Z/]+)?\s+(.+)$", re.ASCII)


def _round_half_up(value: float, digits: int = 0) -> float:
    factor = 10 ** digits
    return math.floor(value * factor + 0.5) / factor


def _trim_decimal(value: float) -> str:
    text = f"{value:.2f}".rstrip("0").rstrip(".")
    return text or "0"


def format_quantity(quantity: float) -> str:
    """Format a scaled quantity, preferring common kitchen fractions."""
    rounded = _round_half_up(quantity, 2)
    for value, label in COMMON_FRACTIONS:
        if abs(rounded - value) < FRACTION_TOLERANCE:
            return label
    return _trim_decimal(rounded)


def _join(quantity: str, separator: str, unit: Optional[str], name: str) -> str:
    if unit:
        return f"{quantity}{separator}{unit} {name}"
    return f"{quantity} {name}"


def scale_ingredient(ingredient: str, scale_factor: float) -> str:
    """Scale the leading quantity of an ingredient line like "300g paneer"."""
    if not isinstance(ingredient, str):
        return ingredient

    match = MIXED_FRACTION_PATTERN.match(ingredient)
    if match:
        whole, numerator, denominator, separator, unit, name = match.groups()
        if int(denominator) == 0:
            return ingredient
        quantity = int(whole) + int(numerator) / int(denominator)
        return _join(format_quantity(quantity * scale_factor), separator, unit, name)

    match = FRACTION_PATTERN.match(ingredient)
    if match:
        numerator, denominator, separator, unit, name = match.groups()
        if int(denominator) == 0:
            return ingredient
        quantity = int(numerator) / int(denominator)
        return _join(format_quantity(quantity * scale_factor), separator, unit, name)

    match = RANGE_PATTERN.match(ingredient)
    if match:
        low, high, separator, unit, name = match.groups()
        scaled_low = _trim_decimal(_round_half_up(float(low) * scale_factor, 1))
        scaled_high = _trim_decimal(_round_half_up(float(high) * scale_factor, 1))
        return _join(f"{scaled_low}-{scaled_high}", separator, unit, name)

    match = DECIMAL_PATTERN.match(ingredient)
    if match:
        quantity, separator, unit, name = match.groups()
        return _join(format_quantity(float(quantity) * scale_factor), separator, unit, name)

    return ingredient


def time_multiplier(scale_factor: float) -> float:
    if scale_factor > 1:
        return 1 + math.log2(scale_factor) * TIME_GROWTH_PER_DOUBLING
    if scale_factor < 1:
        return 1 - math.log2(1 / scale_factor) * TIME_SHRINK_PER_HALVING
    return 1.0


def scale_step(step: Step, scale_factor: float) -> Step:
    if not step.has_timer or scale_factor == 1:
        return step
    new_seconds = int(_round_half_up(step.estimate_seconds * time_multiplier(scale_factor)))
    return step.model_copy(update={
        "estimate_seconds": max(new_seconds, 0),
        "original_seconds": step.estimate_seconds,
    })


def scale(recipe: Recipe, target_servings: Optional[int]) -> ScaledRecipe:
    """Project ``recipe`` onto ``target_servings``.

    Invalid targets (missing, zero or negative) leave the recipe unchanged, as
    does a target equal to the original serving count.
    """
    original = recipe.original_servings
    base = recipe.model_dump(exclude={"current_servings", "scale_factor", "time_adjustment"})

    if not target_servings or target_servings <= 0:
        if target_servings is not None:
            logger.warning(f"Ignoring invalid serving count {target_servings} for recipe {recipe.id}")
        return ScaledRecipe(**base, current_servings=original, scale_factor=1.0)

    scale_factor = target_servings / original
    if scale_factor == 1:
        return ScaledRecipe(**base, current_servings=original, scale_factor=1.0)

    base["ingredients"] = [scale_ingredient(i, scale_factor) for i in recipe.ingredients]
    base["steps"] = [scale_step(s, scale_factor) for s in recipe.steps]
    logger.info(f"Scaled recipe {recipe.id} from {original} to {target_servings} servings (x{scale_factor:.2f})")
    return ScaledRecipe(
        **base,
        current_servings=target_servings,
        scale_factor=scale_factor,
        time_adjustment=time_adjustment_text(original, target_servings, recipe.language),
    )


def time_adjustment_text(original_servings: int, new_servings: int, language: Optional[str] = None) -> str:
    """Describe how cooking time changes for a new serving count."""
    if original_servings == new_servings or original_servings <= 0 or new_servings <= 0:
        return ""
    scale_factor = new_servings / original_servings
    if scale_factor > 1:
        percent = int(_round_half_up(math.log2(scale_factor) * TIME_GROWTH_PER_DOUBLING * 100))
        template = languages.get_time_adjustment_template(language, increase=True)
    else:
        percent = int(_round_half_up(math.log2(1 / scale_factor) * TIME_SHRINK_PER_HALVING * 100))
        template = languages.get_time_adjustment_template(language, increase=False)
    return template.format(percent=percent, servings=new_servings)
