"""Resolution of inbound function-call names to local function links."""

from __future__ import annotations

import logging
import re
from types import MappingProxyType
from typing import Callable

from funclink.db import Database
from funclink.models import FunctionAssistantLink, FunctionDefinition, MatchTier, Resolution
from funclink.naming import normalize, transliterate

LOGGER = logging.getLogger(__name__)

# Keywords in the original script and in transliterated form. Checked in order.
CATEGORY_KEYWORDS = MappingProxyType(
    {
        "phone": ("телефон", "номер", "phone", "telefon", "nomer"),
        "email": ("почта", "email", "e-mail", "pochta"),
        "name": ("имя", "фамилия", "name", "surname", "imya", "familiya"),
        "vehicle": ("автомобиль", "авто", "марка", "car", "vehicle", "avto", "avtomobil", "marka"),
        "address": ("адрес", "address", "adres"),
    }
)

_TOKEN_SPLIT = re.compile(r"[_\- ]")

Matcher = Callable[[str, str, str], bool]


def categorize(name: str) -> str | None:
    """Return the coarse keyword category of a function name, if any."""

    if not name:
        return None
    lowered = name.lower()
    haystacks = (lowered, transliterate(lowered))
    for category, keywords in CATEGORY_KEYWORDS.items():
        if any(keyword in haystack for keyword in keywords for haystack in haystacks):
            return category
    return None


def _tokens(name: str) -> list[str]:
    return [token for token in _TOKEN_SPLIT.split(name.lower()) if len(token) > 2]


def _exact(raw: str, canonical: str, called: str) -> bool:
    return canonical == called


def _case_insensitive(raw: str, canonical: str, called: str) -> bool:
    return canonical.lower() == called.lower()


def _containment(raw: str, canonical: str, called: str) -> bool:
    a, b = canonical.lower(), called.lower()
    return a in b or b in a


def _category(raw: str, canonical: str, called: str) -> bool:
    candidate = categorize(raw) or categorize(canonical)
    return candidate is not None and candidate == categorize(called)


def _token_overlap(raw: str, canonical: str, called: str) -> bool:
    called_tokens = _tokens(called)
    return any(
        a == b or a in b or b in a for a in _tokens(canonical) for b in called_tokens
    )


MATCHERS: tuple[tuple[MatchTier, Matcher], ...] = (
    (MatchTier.EXACT, _exact),
    (MatchTier.CASE_INSENSITIVE, _case_insensitive),
    (MatchTier.CONTAINMENT, _containment),
    (MatchTier.CATEGORY, _category),
    (MatchTier.TOKEN_OVERLAP, _token_overlap),
)


class CallResolver:
    """Matches a remote call name against the functions attached to an assistant.

    Tiers are tried in precedence order across all candidates, so an exact match
    on any link beats a fuzzy match on another. Within a tier the lowest link id
    wins.
    """

    def __init__(self, db: Database) -> None:
        self._db = db

    def resolve(self, assistant_id: int, invocation_name: str) -> Resolution | None:
        candidates = self._db.list_enabled_functions(assistant_id)
        if not candidates:
            LOGGER.info("Assistant %s has no enabled functions", assistant_id)
            return None
        if not invocation_name or not invocation_name.strip():
            LOGGER.warning("Empty function name in call for assistant %s", assistant_id)
            return None
        return match(candidates, invocation_name, assistant_id)


def match(
    candidates: list[tuple[FunctionAssistantLink, FunctionDefinition]],
    invocation_name: str,
    assistant_id: int | None = None,
) -> Resolution | None:
    """Pick the best candidate for ``invocation_name`` or return None."""

    ordered = sorted(candidates, key=lambda pair: pair[0].id)
    prepared = [(link, function, normalize(function.name)) for link, function in ordered]
    for tier, matcher in MATCHERS:
        for link, function, canonical in prepared:
            if matcher(function.name, canonical, invocation_name):
                LOGGER.info(
                    "Call %r on assistant %s matched function %s %r (%s) via %s",
                    invocation_name,
                    assistant_id,
                    function.id,
                    function.name,
                    canonical,
                    tier.value,
                )
                return Resolution(link=link, function=function, tier=tier)
    LOGGER.info("Call %r on assistant %s matched no function", invocation_name, assistant_id)
    return None
