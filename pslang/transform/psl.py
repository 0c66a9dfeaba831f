"""
Transform chat transcripts into PS-LANG prompts.

transform() is pure and deterministic: the same messages always give the
same result, and malformed input gives the empty result instead of raising.

Output layout:
    <@.
    {first user message}
    .>

    <#.
    Tech stack: react, api
    Additional context:
    - {later user message, first 100 chars}...
    #>

    <.bm
    Benchmark this implementation against industry standards.
    ...
    .bm>
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from pslang.transform.zones import Zone, ZoneKind

UNTITLED = "Untitled Conversation"
TITLE_MAX_CHARS = 60
CONTEXT_MAX_CHARS = 100

TECH_KEYWORDS = (
    "next.js",
    "react",
    "typescript",
    "javascript",
    "python",
    "rust",
    "go",
    "api",
    "database",
    "postgres",
    "mysql",
    "mongodb",
    "auth",
    "oauth",
    "jwt",
    "clerk",
    "convex",
    "tailwind",
    "css",
)

BENCHMARK_KEYWORDS = (
    "optimize",
    "performance",
    "benchmark",
    "faster",
    "improve",
    "compare",
    "measure",
    "speed",
    "efficient",
)

# First match wins, checked against the first user message
INTENT_RULES = (
    ("implementation", ("build", "create", "implement")),
    ("debugging", ("fix", "debug", "error")),
    ("optimization", ("optimize", "improve")),
    ("review", ("review", "audit")),
)

BENCHMARK_TEXT = (
    "Benchmark this implementation against industry standards.\n"
    "Measure performance improvements and compare with best practices."
)


@dataclass(frozen=True)
class Message:
    role: str
    content: str


@dataclass(frozen=True)
class TransformResult:
    psl_prompt: str = ""
    meta_tags: list[str] = field(default_factory=list)
    zones: list[Zone] = field(default_factory=list)
    private_signals: list[str] = field(default_factory=list)
    title: str = UNTITLED

    @property
    def is_empty(self) -> bool:
        return not self.psl_prompt and not self.zones


def _coerce(messages: Any) -> list[Message] | None:
    """Normalize input to Message objects, or None if anything is malformed."""
    if isinstance(messages, (str, bytes)) or not isinstance(messages, Sequence):
        return None

    normalized: list[Message] = []
    for item in messages:
        if isinstance(item, Mapping):
            role, content = item.get("role"), item.get("content")
        else:
            role, content = getattr(item, "role", None), getattr(item, "content", None)
        if not isinstance(role, str) or not isinstance(content, str):
            return None
        normalized.append(Message(role=role.strip().lower(), content=content))
    return normalized


def _first_user(messages: list[Message]) -> Message | None:
    return next((m for m in messages if m.role == "user"), None)


def technical_context(messages: list[Message]) -> list[str]:
    """Tech keywords mentioned in user messages, in keyword-list order."""
    found: set[str] = set()
    for message in messages:
        if message.role != "user":
            continue
        lower = message.content.lower()
        found.update(keyword for keyword in TECH_KEYWORDS if keyword in lower)
    return [keyword for keyword in TECH_KEYWORDS if keyword in found]


def has_benchmark_intent(messages: list[Message]) -> bool:
    return any(
        keyword in message.content.lower()
        for message in messages
        if message.role == "user"
        for keyword in BENCHMARK_KEYWORDS
    )


def meta_tags(messages: list[Message]) -> list[str]:
    tags: list[str] = []

    first = _first_user(messages)
    if first is not None:
        lower = first.content.lower()
        intent = next(
            (name for name, words in INTENT_RULES if any(word in lower for word in words)),
            "general",
        )
        tags.append(f"intent:{intent}")

    tech = technical_context(messages)
    if tech:
        tags.append(f"tech_stack:{','.join(tech)}")

    average_length = sum(len(m.content) for m in messages) / len(messages)
    if average_length > 500:
        tags.append("complexity:high")
    elif average_length > 200:
        tags.append("complexity:medium")
    else:
        tags.append("complexity:low")

    return tags


def private_signals(messages: list[Message]) -> list[str]:
    """Signals kept out of the prompt text, encoded as name:value strings."""
    turns = len(messages)

    average_words = sum(len(m.content.split(" ")) for m in messages) / turns
    if average_words > 100:
        expertise = "advanced"
    elif average_words > 50:
        expertise = "intermediate"
    else:
        expertise = "beginner"

    has_code = any("```" in m.content for m in messages)
    has_tests = any("test" in m.content.lower() for m in messages)
    quality = (0.5 if has_code else 0.0) + (0.5 if has_tests else 0.0)

    assistant_turns = sum(1 for m in messages if m.role == "assistant")
    if assistant_turns > 5:
        assistance = "high"
    elif assistant_turns > 2:
        assistance = "medium"
    else:
        assistance = "low"

    return [
        f"user_expertise_level:{expertise}",
        f"time_to_resolution:{turns * 2}",
        f"conversation_turns:{turns}",
        f"code_quality_score:{quality:g}",
        f"agent_assistance_level:{assistance}",
    ]


def _truncate(text: str, limit: int) -> str:
    return text[:limit] + ("..." if len(text) > limit else "")


def extract_title(messages: Any) -> str:
    """First user message cut to 60 characters, or a placeholder."""
    normalized = _coerce(messages)
    first = _first_user(normalized) if normalized else None
    if first is None:
        return UNTITLED
    title = first.content[:TITLE_MAX_CHARS].strip()
    return title + ("..." if len(first.content) > TITLE_MAX_CHARS else "")


def transform(messages: Any) -> TransformResult:
    """
    Convert an ordered sequence of {role, content} messages into PS-LANG.

    Returns:
        TransformResult; the empty result for empty or malformed input
    """
    normalized = _coerce(messages)
    if not normalized:
        return TransformResult()

    zones: list[Zone] = []
    tech = technical_context(normalized)
    first = _first_user(normalized)
    main_request = first.content if first else ""

    prompt = f"<@.\n{main_request}\n.>\n\n"
    zones.append(Zone(kind=ZoneKind.PUBLIC, content=main_request.strip()))

    if tech:
        private_block = f"Tech stack: {', '.join(tech)}\n"
        follow_ups = [m for i, m in enumerate(normalized) if m.role == "user" and i > 0]
        if follow_ups:
            private_block += "\nAdditional context:\n"
            private_block += "".join(
                f"- {_truncate(m.content, CONTEXT_MAX_CHARS)}\n" for m in follow_ups
            )
        prompt += f"<#.\n{private_block}#>\n\n"
        zones.append(Zone(kind=ZoneKind.PRIVATE, content=private_block.strip()))

    if has_benchmark_intent(normalized):
        prompt += f"<.bm\n{BENCHMARK_TEXT}\n.bm>"
        zones.append(Zone(kind=ZoneKind.BOOKMARK, content=BENCHMARK_TEXT))

    return TransformResult(
        psl_prompt=prompt.strip(),
        meta_tags=meta_tags(normalized),
        zones=zones,
        private_signals=private_signals(normalized),
        title=extract_title(normalized),
    )
