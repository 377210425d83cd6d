"""
Exchange slugs

Slugs identify an exchange in commands, so they are restricted to
`A-Za-z0-9_-`. When an organizer does not pick one, it is derived from the
display name in CamelCase: "JEEZ game jam 2023" -> "JEEZGameJam2023".
"""

import re
import unicodedata

SLUG_RE = re.compile(r"^[A-Za-z0-9_-]{1,64}$")


def is_valid_slug(slug: str) -> bool:
    return bool(SLUG_RE.match(slug or ""))


def slugify_camel(text: str) -> str:
    """Build a CamelCase slug: ASCII-fold, drop punctuation, capitalize word starts."""
    folded = unicodedata.normalize("NFKD", text).encode("ascii", "ignore").decode("ascii")

    slug = []
    start_of_word = False
    for char in folded:
        if char.isdigit() or char.isupper():
            slug.append(char)
        elif char.isalpha():
            slug.append(char.upper() if start_of_word else char)
        start_of_word = not char.isalnum()

    return "".join(slug)[:64]
