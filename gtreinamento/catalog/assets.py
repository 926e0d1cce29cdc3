"""Resolve material paths into playable URLs and YouTube identifiers.

Stored materials are either YouTube links (any of the common URL shapes) or
paths relative to the media storage, e.g. ``trilhas/12/intro.mp4``.
"""

import re
from urllib.parse import parse_qs, urlparse

_YOUTUBE_ID = re.compile(r"^[A-Za-z0-9_-]{11}$")
_PATH_PREFIXES = ("/embed/", "/shorts/", "/live/")


def youtube_video_id(url_or_id: str | None) -> str | None:
    """Extract the 11-char video id from a bare id or a YouTube URL."""
    if not url_or_id:
        return None
    value = url_or_id.strip()
    if _YOUTUBE_ID.match(value):
        return value

    try:
        parsed = urlparse(value)
    except ValueError:
        return None
    host = (parsed.hostname or "").lower()

    if "youtu.be" in host:
        return parsed.path.lstrip("/").split("/")[0] or None
    if "youtube.com" in host:
        if parsed.path.startswith("/watch"):
            return parse_qs(parsed.query).get("v", [None])[0]
        for prefix in _PATH_PREFIXES:
            if parsed.path.startswith(prefix):
                return parsed.path.rstrip("/").rsplit("/", 1)[-1] or None
        return parse_qs(parsed.query).get("v", [None])[0]
    return None


def is_youtube_source(path: str | None) -> bool:
    if not path:
        return False
    host = (urlparse(path.strip()).hostname or "").lower()
    return "youtu.be" in host or "youtube.com" in host


def youtube_thumbnail_url(video_id: str) -> str:
    return f"https://img.youtube.com/vi/{video_id}/hqdefault.jpg"


def youtube_embed_url(video_id: str) -> str:
    return f"https://www.youtube.com/embed/{video_id}?enablejsapi=1&rel=0"


def resolve_material_source(path: str | None, base_url: str) -> str | None:
    """Playable URL for a stored material path.

    YouTube and other absolute http(s) links are returned untouched; relative
    storage paths are joined onto ``base_url``.
    """
    if not path or not path.strip():
        return None
    value = path.strip()
    if is_youtube_source(value):
        return value
    if urlparse(value).scheme in ("http", "https"):
        return value
    normalized = value.replace("\\", "/").lstrip("/")
    return f"{base_url.rstrip('/')}/{normalized}"
