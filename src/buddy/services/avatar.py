"""Generated avatar URIs for users and agents without an image."""

from __future__ import annotations

from enum import Enum
from urllib.parse import urlencode

DEFAULT_AVATAR_BASE_URL = "https://api.dicebear.com/9.x"


class AvatarVariant(str, Enum):
    INITIALS = "initials"
    BOTTTS_NEUTRAL = "bottts-neutral"


def generate_avatar_uri(
    seed: str,
    variant: AvatarVariant = AvatarVariant.INITIALS,
    base_url: str = DEFAULT_AVATAR_BASE_URL,
) -> str:
    """Return a deterministic SVG avatar URL for seed.

    Initials avatars are used for people, bottts-neutral for agents.
    """
    params = {"seed": seed}
    if variant == AvatarVariant.INITIALS:
        params["fontWeight"] = "500"
        params["fontSize"] = "42"
    return f"{base_url.rstrip('/')}/{variant.value}/svg?{urlencode(params)}"
