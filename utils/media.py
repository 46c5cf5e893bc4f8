"""
Media file classification by extension.
"""

import os
import re
from typing import Literal, Optional
from urllib.parse import urlsplit

IMAGE_EXTENSIONS = frozenset({".jpg", ".jpeg", ".png", ".webp", ".gif", ".avif"})
MODEL_EXTENSIONS = frozenset({".stl", ".obj", ".glb", ".gltf"})

MediaRole = Literal["image", "model"]

_REMOTE_RE = re.compile(r"^https?://", re.IGNORECASE)


def is_remote_url(value: str) -> bool:
    """True for http(s) URLs."""
    return bool(_REMOTE_RE.match(value or ""))


def extension_of(value: str) -> str:
    """Lowercase extension of a path or URL path component ('' if none)."""
    if not value:
        return ""
    path = urlsplit(value).path if is_remote_url(value) else value
    return os.path.splitext(path)[1].lower()


def is_image_name(value: str) -> bool:
    return extension_of(value) in IMAGE_EXTENSIONS


def classify_media_url(value: Optional[str], role: MediaRole) -> Optional[str]:
    """
    Validate a media reference against the allow-list for its role.

    Args:
        value: Raw URL or path from an import row
        role: "image" or "model"

    Returns:
        Trimmed value if its extension matches the role, else None
    """
    if value is None:
        return None
    cleaned = str(value).strip().strip('"').strip("'")
    if not cleaned:
        return None
    allowed = IMAGE_EXTENSIONS if role == "image" else MODEL_EXTENSIONS
    return cleaned if extension_of(cleaned) in allowed else None
