"""Conversation transformer: chat transcripts to PS-LANG zones"""

from __future__ import annotations

from pslang.transform.psl import TransformResult, extract_title, transform
from pslang.transform.zones import Zone, ZoneKind, parse_zones

__all__ = ["TransformResult", "Zone", "ZoneKind", "extract_title", "parse_zones", "transform"]
