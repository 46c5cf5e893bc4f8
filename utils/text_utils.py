"""
Text utilities for import cells and category slugs.
"""

from typing import Any, Optional


def clean_text(value: Any) -> Optional[str]:
    """
    Trim a cell value.

    Returns None for None and whitespace-only strings.
    """
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def split_category_slugs(value: Any) -> list[str]:
    """
    Split a pipe-delimited category cell into normalized slugs.

    - "Toys | home|"  → ["toys", "home"]
    - "Toys|toys"     → ["toys"]
    - None            → []
    """
    if not value:
        return []
    if isinstance(value, (list, tuple)):
        parts = [str(v) for v in value]
    else:
        parts = str(value).split("|")

    slugs: list[str] = []
    for part in parts:
        slug = part.strip().lower()
        if slug and slug not in slugs:
            slugs.append(slug)
    return slugs


def slug_to_name(slug: str) -> str:
    """Display name for an auto-created category: "desk-toys" → "Desk Toys"."""
    return " ".join(w.capitalize() for w in slug.replace("_", "-").split("-") if w)
