from typing import Optional


class CookModeError(Exception):
    """Base class for errors raised by the cooking services."""


class EmptyRecipeError(CookModeError):
    def __init__(self, message: str = "Recipe has no steps"):
        super().__init__(message)


class RecipeNotFoundError(CookModeError):
    def __init__(self, recipe_id: str):
        super().__init__(f"Recipe not found: {recipe_id}")
        self.recipe_id = recipe_id


class SessionNotFoundError(CookModeError):
    def __init__(self, session_id: str):
        super().__init__(f"Cooking session not found: {session_id}")
        self.session_id = session_id


class RecipeGenerationError(CookModeError):
    """The LLM call failed or returned something that is not a recipe."""


class SpeechError(CookModeError):
    """A narration backend could not speak an utterance."""


class RecognitionError(CookModeError):
    """A recognition engine failure, tagged with a browser-style error code."""

    def __init__(self, code: str, message: Optional[str] = None):
        super().__init__(message or code)
        self.code = code


class SessionStateError(CookModeError):
    """The requested action is not allowed in the session's current phase."""
