"""Static food knowledge: categories, synonyms, allergens and name matching."""

import re

from meal_analyzer.domain.meals import FoodCategory, MealType

_CATEGORY_KEYWORDS: tuple[tuple[FoodCategory, tuple[str, ...]], ...] = (
    (FoodCategory.PROTEIN, ("chicken", "beef", "fish", "pork", "egg")),
    (FoodCategory.CARBOHYDRATES, ("rice", "bread", "pasta", "potato", "cereal")),
    (
        FoodCategory.VEGETABLES,
        ("broccoli", "spinach", "carrot", "lettuce", "tomato"),
    ),
    (FoodCategory.FRUITS, ("apple", "banana", "orange", "berry", "grape")),
    (FoodCategory.DAIRY, ("cheese", "milk", "yogurt")),
    (FoodCategory.FATS, ("oil", "butter", "nut")),
)

SYNONYMS: dict[str, tuple[str, ...]] = {
    "chicken": ("poultry", "fowl"),
    "beef": ("steak", "ground beef", "hamburger"),
    "fish": ("seafood", "salmon", "tuna"),
    "rice": ("grain", "brown rice", "white rice"),
    "bread": ("toast", "roll", "bun"),
    "apple": ("fruit",),
    "banana": ("fruit",),
    "broccoli": ("vegetable", "green vegetable"),
}

ALLERGENS: dict[str, tuple[str, ...]] = {
    "nuts": ("almond", "peanut", "walnut", "cashew", "pecan", "hazelnut"),
    "dairy": ("milk", "cheese", "butter", "cream", "yogurt"),
    "gluten": ("wheat", "bread", "pasta", "flour", "cereal"),
    "shellfish": ("shrimp", "crab", "lobster", "oyster", "clam"),
    "eggs": ("egg", "mayonnaise"),
    "soy": ("soy", "tofu", "edamame"),
}

DEFAULT_FOOD_LABELS: tuple[str, ...] = (
    "pizza",
    "burger",
    "salad",
    "pasta",
    "sandwich",
    "soup",
    "chicken",
    "beef",
    "fish",
    "rice",
    "bread",
    "eggs",
    "fruit",
    "vegetables",
    "cheese",
    "yogurt",
    "cereal",
    "nuts",
    "beans",
    "pasta sauce",
)

_RAW_MARKERS = ("raw", "fresh", "uncooked")
_COOKED_MARKERS = ("cooked", "grilled", "fried", "baked")
_RAW_INGREDIENTS = (
    "chicken breast",
    "ground beef",
    "salmon fillet",
    "broccoli",
    "carrot",
    "onion",
    "garlic",
    "spinach",
    "rice",
    "pasta",
    "flour",
    "egg",
    "olive oil",
    "salt",
    "pepper",
    "herbs",
    "spices",
)
_PREPARED_FOODS = (
    "pizza",
    "burger",
    "sandwich",
    "salad",
    "soup",
    "stew",
    "casserole",
    "pasta dish",
    "stir fry",
    "curry",
    "taco",
    "burrito",
)

_WORD_SPLIT = re.compile(r"[^a-z0-9]+")


def normalize_name(name: str) -> str:
    """Lowercase a food name and collapse separators into single spaces."""
    return " ".join(_words(name))


def categorize_food(name: str) -> FoodCategory:
    """Infer a food category from keywords in the name."""
    lowered = name.lower()
    for category, keywords in _CATEGORY_KEYWORDS:
        if any(keyword in lowered for keyword in keywords):
            return category
    return FoodCategory.OTHER


def alternative_names(name: str) -> tuple[str, ...]:
    """Return curated alternative names for the first matching keyword."""
    lowered = name.lower()
    for keyword, synonyms in SYNONYMS.items():
        if keyword in lowered:
            return synonyms
    return ()


def search_keywords(name: str) -> frozenset[str]:
    """Keywords under which a food is indexed in the nutrition cache.

    Contains the full normalized name, every word longer than two characters,
    and the synonyms of any curated keyword the name mentions.
    """
    normalized = normalize_name(name)
    if not normalized:
        return frozenset()
    keywords = {normalized}
    keywords.update(word for word in normalized.split() if len(word) > 2)
    for keyword, synonyms in SYNONYMS.items():
        if keyword in normalized:
            keywords.update(synonyms)
    return frozenset(keywords)


def name_similarity(first: str, second: str, substring_score: float = 0.8) -> float:
    """Score how closely two food names match, in [0, 1]."""
    a = normalize_name(first)
    b = normalize_name(second)
    if not a or not b:
        return 0.0
    if a == b:
        return 1.0
    if a in b or b in a:
        return substring_score
    words_a = set(a.split())
    words_b = set(b.split())
    union = words_a | words_b
    return len(words_a & words_b) / len(union)


def is_same_food(first: str, second: str) -> bool:
    """Whether two detector labels describe the same item.

    Names match on containment either way, or when the shared words cover at
    least half of either name.
    """
    a = normalize_name(first)
    b = normalize_name(second)
    if not a or not b:
        return False
    if a in b or b in a:
        return True
    words_a = a.split()
    words_b = b.split()
    shared = len(set(words_a) & set(words_b))
    return shared / len(words_a) >= 0.5 or shared / len(words_b) >= 0.5


def detect_allergens(names: list[str]) -> frozenset[str]:
    """Return allergen groups triggered by any of the names."""
    found: set[str] = set()
    for name in names:
        lowered = name.lower()
        for allergen, triggers in ALLERGENS.items():
            if any(trigger in lowered for trigger in triggers):
                found.add(allergen)
    return frozenset(found)


def infer_meal_type(names: list[str]) -> MealType:
    """Guess the meal type from raw/cooked cues in food names."""
    if not names:
        return MealType.UNKNOWN
    raw_count = 0
    cooked_count = 0
    for name in names:
        lowered = name.lower()
        if any(marker in lowered for marker in _RAW_MARKERS) or any(
            item in lowered for item in _RAW_INGREDIENTS
        ):
            raw_count += 1
        elif any(marker in lowered for marker in _COOKED_MARKERS) or any(
            item in lowered for item in _PREPARED_FOODS
        ):
            cooked_count += 1

    if raw_count > cooked_count:
        return MealType.INGREDIENTS
    if cooked_count > raw_count:
        return MealType.READY_MADE
    if raw_count > 0 and cooked_count > 0:
        return MealType.MIXED
    return MealType.UNKNOWN


def _words(name: str) -> list[str]:
    return [word for word in _WORD_SPLIT.split(name.lower()) if word]
