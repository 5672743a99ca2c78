"""Errors surfaced to callers of the analysis pipeline."""


class MealAnalysisError(Exception):
    """Base class for input-rejection errors."""


class DecodeError(MealAnalysisError):
    """Raised when the supplied bytes are not a decodable image."""


class NonFoodImageError(MealAnalysisError):
    """Raised when the image does not show food, ingredients or beverages."""

    def __init__(self, detected_content: str) -> None:
        super().__init__(detected_content)
        self.detected_content = detected_content
