import logging
from typing import Dict, List

from models.schemas import TasteProfile, TasteRating

logger = logging.getLogger(__name__)

TASTE_AXES = ("sweet", "salty", "spicy", "sour", "bitter", "umami")


class TasteProfileService:
    """Collects post-cooking taste ratings and averages them per axis."""

    def __init__(self):
        self._ratings: List[TasteRating] = []

    def add_rating(self, rating: TasteRating) -> TasteProfile:
        self._ratings.append(rating)
        logger.info(f"Recorded taste rating #{len(self._ratings)}")
        return self.get_profile()

    def get_profile(self) -> TasteProfile:
        count = len(self._ratings)
        if not count:
            return TasteProfile()
        averages: Dict[str, float] = {
            axis: round(sum(getattr(r, axis) for r in self._ratings) / count, 1)
            for axis in TASTE_AXES
        }
        return TasteProfile(**averages, ratings_count=count)

    def preference_phrase(self) -> str:
        """Describe the non-zero preferences, e.g. "sweet: 3, spicy: 4.5"."""
        profile = self.get_profile()
        if not profile.ratings_count:
            return ""
        preferences = []
        for axis in TASTE_AXES:
            value = getattr(profile, axis)
            if value > 0:
                preferences.append(f"{axis}: {value:g}")
        return ", ".join(preferences)

    def enhance_prompt(self, prompt: str) -> str:
        """Prefix a recipe request with the user's taste preferences, if any."""
        phrase = self.preference_phrase()
        if not phrase:
            return prompt
        return f"Create a recipe for someone with these taste preferences: {phrase}. {prompt}"
