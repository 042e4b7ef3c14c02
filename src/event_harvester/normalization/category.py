"""
Category mapping.

Lookup order: per-source table (exact, case-insensitive), then the shared
keyword table (substring, first match in declaration order), then the input
text unchanged.

The keyword table is matched in declaration order, so text containing two
keywords takes the earlier one ("music museum tour" -> Music). Reordering the
table changes results for such text.
"""

from typing import Mapping, Optional, Tuple

UNCATEGORIZED = "Uncategorized"

DEFAULT_KEYWORDS: Tuple[Tuple[str, str], ...] = (
    ("concert", "Music"),
    ("music", "Music"),
    ("festival", "Festival"),
    ("food", "Food & Drink"),
    ("drink", "Food & Drink"),
    ("sports", "Sports"),
    ("museum", "Museum"),
    ("art", "Art"),
    ("theater", "Theater"),
    ("comedy", "Comedy"),
    ("trivia", "Trivia"),
    ("book club", "Book Club"),
    ("workshop", "Workshop"),
    ("conference", "Conference"),
    ("networking", "Networking"),
    ("landmark", "Landmark"),
    ("history", "History"),
)


def map_category(
    text: Optional[str],
    mapping: Optional[Mapping[str, str]] = None,
    keywords: Tuple[Tuple[str, str], ...] = DEFAULT_KEYWORDS,
) -> str:
    """
    Map raw category text to a canonical category.

    Args:
        text: Raw category text.
        mapping: Per-source table keyed by lowercase text.
        keywords: Ordered (keyword, category) pairs for substring matching.

    Returns:
        The canonical category, the original text when nothing matches, or
        "Uncategorized" for empty input.
    """
    if text is None:
        return UNCATEGORIZED
    original = " ".join(str(text).split())
    if not original:
        return UNCATEGORIZED

    key = original.lower()
    if mapping:
        for source_key, category in mapping.items():
            if source_key.strip().lower() == key:
                return category

    for keyword, category in keywords:
        if keyword in key:
            return category

    return original
