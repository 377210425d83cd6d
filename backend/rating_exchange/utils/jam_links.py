"""
Jam link normalization

Each jam host has its own URL shape for the jam page and for individual
entries. Normalized links are what gets stored and compared, so the same
game submitted with or without a trailing slash is one link.

- itch.io:     https://itch.io/jam/<jam-slug>           entries: <jam>/rate/<id>
- Ludum Dare:  https://ldjam.com/events/ludum-dare/<n>  entries: <jam>/<game-slug>
"""

import re
from typing import Optional

from rating_exchange.models.exchange import JamType

ITCH_JAM_PREFIX = r"https://itch\.io/jam/[a-z0-9_-]+"
LUDUM_DARE_JAM_PREFIX = r"https://ldjam\.com/events/ludum-dare/[0-9]+"

JAM_LINK_PATTERNS = {
    JamType.itch: re.compile(rf"^({ITCH_JAM_PREFIX})/?$"),
    JamType.ludum_dare: re.compile(rf"^({LUDUM_DARE_JAM_PREFIX})/?$"),
}
ITCH_ENTRY_RE = re.compile(r"^/rate/([0-9]+)/?$")
LUDUM_DARE_ENTRY_RE = re.compile(r"^/([a-z0-9-]+)/?$")

# Ludum Dare event pages that share the entry URL shape
LUDUM_DARE_RESERVED = {"results", "games", "theme", "stats"}

JAM_LINK_EXAMPLES = {
    JamType.itch: "https://itch.io/jam/example-jam",
    JamType.ludum_dare: "https://ldjam.com/events/ludum-dare/123456",
}


def jam_link_example(jam_type: JamType) -> str:
    return JAM_LINK_EXAMPLES[JamType(jam_type)]


def entry_link_example(jam_type: JamType, jam_link: str) -> str:
    if JamType(jam_type) == JamType.itch:
        return f"{jam_link}/rate/123456"
    return f"{jam_link}/example-game"


def normalize_jam_link(jam_type: JamType, link: str) -> Optional[str]:
    """Return the canonical jam link, or None when it does not match the jam type."""
    pattern = JAM_LINK_PATTERNS[JamType(jam_type)]
    match = pattern.match(link.strip())
    return match.group(1) if match else None


def normalize_entry_link(jam_type: JamType, jam_link: str, entry_link: str) -> Optional[str]:
    """Return the canonical entry link inside jam_link, or None when invalid."""
    entry_link = entry_link.strip()
    if not entry_link.startswith(jam_link):
        return None
    tail = entry_link[len(jam_link):]

    if JamType(jam_type) == JamType.itch:
        match = ITCH_ENTRY_RE.match(tail)
        return f"{jam_link}/rate/{match.group(1)}" if match else None

    match = LUDUM_DARE_ENTRY_RE.match(tail)
    if not match or match.group(1) in LUDUM_DARE_RESERVED:
        return None
    return f"{jam_link}/{match.group(1)}"
