"""
PS-LANG zone markers.

A zone is a tagged span of prompt text with a visibility scope. parse_zones()
finds every marked span in a document and returns them in document order.
"""

from __future__ import annotations

import re
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any


class ZoneKind(str, Enum):
    PASS_THROUGH = "pass-through"
    PRIVATE = "private"
    PUBLIC = "public"
    ACTION = "action"
    QUESTION = "question"
    BENCHMARK = "benchmark"
    BOOKMARK = "bookmark"


# Marker syntax: <#. ... #.>  <. ... .>  <$. ... $.>  <@. ... @.>  <?. ... ?.>  <.bm ... .bm>
ZONE_PATTERNS: dict[ZoneKind, re.Pattern[str]] = {
    ZoneKind.PASS_THROUGH: re.compile(r"<#\.(.*?)#\.>", re.DOTALL),
    ZoneKind.PRIVATE: re.compile(r"<\.(?!bm)(.*?)\.>", re.DOTALL),
    ZoneKind.PUBLIC: re.compile(r"<\$\.(.*?)\$\.>", re.DOTALL),
    ZoneKind.ACTION: re.compile(r"<@\.(.*?)@\.>", re.DOTALL),
    ZoneKind.QUESTION: re.compile(r"<\?\.(.*?)\?\.>", re.DOTALL),
    ZoneKind.BENCHMARK: re.compile(r"<\.bm(.*?)\.bm>", re.DOTALL),
}


@dataclass(frozen=True)
class Zone:
    kind: ZoneKind
    content: str
    start: int = 0
    end: int = 0

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["kind"] = self.kind.value
        return data


def parse_zones(text: str) -> list[Zone]:
    """Return every marked zone in text, ordered by start offset."""
    if not isinstance(text, str) or not text:
        return []

    zones = [
        Zone(kind=kind, content=match.group(1).strip(), start=match.start(), end=match.end())
        for kind, pattern in ZONE_PATTERNS.items()
        for match in pattern.finditer(text)
    ]
    return sorted(zones, key=lambda zone: (zone.start, zone.end))
