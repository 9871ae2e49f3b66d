"""Canonical function names accepted by the remote assistant API.

The remote API only accepts ``[A-Za-z0-9_-]{1,64}`` as a function name, while
operators name functions freely ("Звонок клиента"). ``normalize`` maps any
label onto that charset. It is pure and idempotent, but not injective: two
labels may share a canonical name, so the function store refuses such
collisions at creation time.
"""

from __future__ import annotations

import re
import time
from types import MappingProxyType

MAX_NAME_LENGTH = 64

_LOWER = {
    "а": "a", "б": "b", "в": "v", "г": "g", "д": "d", "е": "e", "ё": "e",
    "ж": "zh", "з": "z", "и": "i", "й": "y", "к": "k", "л": "l", "м": "m",
    "н": "n", "о": "o", "п": "p", "р": "r", "с": "s", "т": "t", "у": "u",
    "ф": "f", "х": "h", "ц": "ts", "ч": "ch", "ш": "sh", "щ": "sch", "ъ": "",
    "ы": "y", "ь": "", "э": "e", "ю": "yu", "я": "ya",
}

TRANSLITERATION = MappingProxyType(
    {
        **_LOWER,
        **{upper: latin.capitalize() for upper, latin in ((k.upper(), v) for k, v in _LOWER.items())},
    }
)

_WHITESPACE = re.compile(r"\s+")
_DISALLOWED = re.compile(r"[^A-Za-z0-9_-]")
_UNDERSCORES = re.compile(r"_{2,}")
_EDGES = "_-"
_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


def transliterate(text: str) -> str:
    """Replace Cyrillic letters with Latin approximations; other characters pass through."""

    return "".join(TRANSLITERATION.get(char, char) for char in text)


def normalize(raw_name: str) -> str:
    """Return the canonical identifier for a human-readable function name.

    >>> normalize("Звонок клиента")
    'zvonok_klienta'
    """
    name = transliterate(raw_name or "")
    name = _WHITESPACE.sub("_", name)
    name = _DISALLOWED.sub("", name)
    name = _UNDERSCORES.sub("_", name).lower()
    name = name[:MAX_NAME_LENGTH].strip(_EDGES)
    return name or fallback_name()


def fallback_name(now_ms: int | None = None) -> str:
    """Name used when nothing of the label survives normalization."""

    if now_ms is None:
        now_ms = int(time.time() * 1000)
    return f"function_{_to_base36(now_ms)}"


def _to_base36(value: int) -> str:
    digits = []
    while True:
        value, rem = divmod(value, 36)
        digits.append(_BASE36[rem])
        if value == 0:
            break
    return "".join(reversed(digits))
