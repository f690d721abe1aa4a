"""
Dietary vocabulary.

Hand-curated term lists used by the deterministic hard filter. Coverage is
English-first with common Spanish and Chinese menu terms; gaps here let a
dish through the deterministic pass (the generative guard is the second line).
"""
from __future__ import annotations

HARD_CORE_ALIASES: dict[str, str] = {
    "vegan": "vegan",
    "plant-based": "vegan",
    "plantbased": "vegan",
    "vegetarian": "vegetarian",
    "veggie": "vegetarian",
    "veg": "vegetarian",
    "glutenfree": "glutenfree",
    "gluten-free": "glutenfree",
    "gluten free": "glutenfree",
    "gf": "glutenfree",
    "halal": "halal",
    "kosher": "kosher",
}

INGREDIENT_SYNONYMS: dict[str, tuple[str, ...]] = {
    "mushroom": ("mushroom", "hongos", "champiñones", "fungi", "shiitake", "portobello", "蘑菇", "香菇"),
    "chicken": ("chicken", "pollo", "poultry", "鸡", "鸡肉"),
    "beef": ("beef", "steak", "carne de res", "brisket", "牛肉"),
    "pork": ("pork", "bacon", "ham", "prosciutto", "chorizo", "cerdo", "lard", "猪肉", "叉烧"),
    "lamb": ("lamb", "mutton", "cordero", "羊肉"),
    "fish": ("fish", "salmon", "tuna", "cod", "anchovy", "pescado", "鱼"),
    "shellfish": ("shellfish", "shrimp", "prawn", "crab", "lobster", "oyster", "clam", "mussel", "scallop", "camarón", "虾", "蟹"),
    "shrimp": ("shrimp", "prawn", "camarón", "虾"),
    "seafood": ("seafood", "fish", "shrimp", "prawn", "crab", "lobster", "oyster", "clam", "mussel", "scallop", "squid", "calamari", "海鲜"),
    "egg": ("egg", "huevo", "omelette", "蛋", "鸡蛋"),
    "dairy": ("dairy", "milk", "cheese", "butter", "cream", "yogurt", "queso", "leche", "paneer", "ghee", "奶", "芝士"),
    "cheese": ("cheese", "queso", "mozzarella", "parmesan", "cheddar", "paneer", "芝士"),
    "peanut": ("peanut", "groundnut", "cacahuate", "maní", "satay", "花生"),
    "nut": ("nut", "peanut", "almond", "cashew", "walnut", "pecan", "pistachio", "hazelnut", "坚果"),
    "soy": ("soy", "soya", "tofu", "edamame", "tempeh", "miso", "豆腐", "酱油"),
    "sesame": ("sesame", "tahini", "芝麻"),
    "onion": ("onion", "scallion", "shallot", "cebolla", "洋葱", "葱"),
    "garlic": ("garlic", "ajo", "蒜"),
    "cilantro": ("cilantro", "coriander", "香菜"),
    "spicy": ("spicy", "chili", "chilli", "jalapeño", "jalapeno", "habanero", "sichuan", "picante", "辣"),
    "alcohol": ("alcohol", "wine", "beer", "sake", "rum", "vodka", "whiskey", "liqueur", "酒"),
    "sugar": ("sugar", "syrup", "honey", "caramel", "糖"),
}

NON_VEGAN_TERMS = (
    "chicken", "beef", "pork", "lamb", "duck", "turkey", "bacon", "ham", "sausage",
    "fish", "tuna", "salmon", "shrimp", "crab", "lobster", "oyster", "clam", "mussel",
    "scallop", "egg", "milk", "cheese", "butter", "cream", "yogurt", "honey",
)

MEAT_SEAFOOD_TERMS = (
    "chicken", "beef", "pork", "lamb", "duck", "turkey", "bacon", "ham", "sausage",
    "fish", "tuna", "salmon", "shrimp", "crab", "lobster", "oyster", "clam", "mussel",
    "scallop",
)

GLUTEN_TERMS = (
    "bread", "bun", "pasta", "noodle", "dumpling", "flour", "tortilla", "batter",
    "wheat", "breadcrumbs", "soy sauce",
)

HALAL_TERMS = (
    "pork", "bacon", "ham", "prosciutto", "chorizo", "lard", "wine", "beer", "rum",
    "sake", "whiskey", "vodka",
)

KOSHER_TERMS = (
    "pork", "bacon", "ham", "prosciutto", "chorizo", "lard", "shrimp", "prawn",
    "crab", "lobster", "oyster", "clam", "mussel", "scallop", "squid", "calamari",
)

VEGAN_INDICATORS = ("vegan", "plant-based", "plant based")
VEGETARIAN_INDICATORS = ("vegetarian", "vegan")
GLUTEN_FREE_INDICATORS = ("gluten-free", "gluten free", "gf")
