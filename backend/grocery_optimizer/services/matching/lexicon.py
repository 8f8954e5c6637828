"""
Static lookup data for product matching: synonym groups and category keywords.
Kept apart from the scorer so the tables can be edited and tested on their own.
"""

import re

# Every phrase in a group is interchangeable with every other phrase in that group.
SYNONYM_GROUPS: tuple[tuple[str, ...], ...] = (
    ("spaghetti sauce", "marinara sauce", "pasta sauce", "tomato sauce"),
    ("ground beef", "hamburger meat", "minced beef"),
    ("green onions", "scallions", "spring onions"),
    ("cilantro", "coriander"),
    ("garbanzo beans", "chickpeas"),
    ("zucchini", "courgette"),
    ("eggplant", "aubergine"),
    ("bell pepper", "sweet pepper", "capsicum"),
    ("heavy cream", "whipping cream"),
    ("powdered sugar", "confectioners sugar", "icing sugar"),
    ("soda", "soft drink", "pop"),
    ("whole milk", "vitamin d milk"),
    ("2% milk", "reduced fat milk"),
    ("paper towels", "kitchen roll"),
    ("toilet paper", "bath tissue"),
)

# Category -> keywords. Used only when no product scored above zero for a query.
CATEGORY_KEYWORDS: dict[str, tuple[str, ...]] = {
    "Dairy": ("milk", "cheese", "yogurt", "butter", "cream", "egg"),
    "Produce": ("apple", "banana", "lettuce", "tomato", "onion", "potato", "garlic", "lemon", "avocado", "spinach"),
    "Meat": ("beef", "chicken", "pork", "bacon", "sausage"),
    "Seafood": ("fish", "salmon", "shrimp", "tuna", "tilapia"),
    "Bread": ("bread", "loaf"),
    "Pasta": ("pasta", "spaghetti", "penne", "noodle"),
    "Beverage": ("juice", "coffee", "water", "soda", "cola"),
    "Frozen": ("frozen", "ice cream", "pizza", "waffle"),
    "Snacks": ("chips", "nuts", "granola", "almonds"),
}


def _contains_phrase(text: str, phrase: str) -> bool:
    # Word-bounded so "pop" does not fire inside "popcorn"
    return re.search(rf"(?<![\w%]){re.escape(phrase)}(?![\w%])", text) is not None


def expand_synonyms(query: str) -> list[str]:
    """
    Rewrite a normalized query with every synonym of each group phrase it contains.
    The query itself is not included; order is stable and duplicates are dropped.
    """
    expansions: list[str] = []
    for group in SYNONYM_GROUPS:
        for phrase in group:
            if not _contains_phrase(query, phrase):
                continue
            for alternative in group:
                if alternative == phrase:
                    continue
                rewritten = re.sub(
                    rf"(?<![\w%]){re.escape(phrase)}(?![\w%])",
                    lambda _m: alternative,
                    query,
                )
                if rewritten != query and rewritten not in expansions:
                    expansions.append(rewritten)
    return expansions


def categories_for_query(query: str) -> list[str]:
    return [
        category
        for category, keywords in CATEGORY_KEYWORDS.items()
        if any(kw in query for kw in keywords)
    ]
