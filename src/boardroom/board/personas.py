"""Board persona registry and persona response parsing."""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any

from src.boardroom.board.schemas import (
    ParsedPersonaPayload,
    PersonaId,
    PersonaRecommendation,
)


@dataclass(frozen=True)
class BoardPersona:
    """Display and prompting details for one board persona."""

    id: PersonaId
    name: str
    focus: str


PERSONAS: dict[PersonaId, BoardPersona] = {
    PersonaId.CEO: BoardPersona(
        id=PersonaId.CEO,
        name="CEO",
        focus="company strategy, top wins and the decisions the board must make",
    ),
    PersonaId.CFO: BoardPersona(
        id=PersonaId.CFO,
        name="CFO",
        focus="financial health, runway, burn and capital allocation",
    ),
    PersonaId.CMO: BoardPersona(
        id=PersonaId.CMO,
        name="CMO",
        focus="growth outlook, pipeline and go-to-market priorities",
    ),
}


def get_persona(persona_id: PersonaId | str) -> BoardPersona:
    return PERSONAS[PersonaId(persona_id)]


def persona_name(persona_id: PersonaId | str) -> str:
    """Display name for a persona id, falling back to the upper-cased id."""
    try:
        return get_persona(persona_id).name
    except (KeyError, ValueError):
        return str(persona_id).upper()


def _optional_str(value: Any) -> str | None:
    return str(value) if value else None


def _str_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [str(entry) for entry in value]


def parse_persona_payload(raw: str) -> ParsedPersonaPayload:
    """Parse a persona response into its structured form.

    Personas are asked to answer with a JSON object carrying ``summary``,
    ``risks``, ``opportunities``, ``recommendations`` and ``metrics``.
    Anything that is not a JSON object degrades to a payload whose summary
    is the trimmed raw text.

    Args:
        raw: Raw persona response content.

    Returns:
        ParsedPersonaPayload; never raises on malformed input.
    """
    trimmed = raw.strip()

    try:
        parsed = json.loads(trimmed)
    except (json.JSONDecodeError, ValueError):
        return ParsedPersonaPayload(summary=trimmed)

    if not isinstance(parsed, dict):
        return ParsedPersonaPayload(summary=trimmed)

    raw_recommendations = parsed.get("recommendations")
    if not isinstance(raw_recommendations, list):
        raw_recommendations = []

    recommendations = [
        PersonaRecommendation(
            title=str(item.get("title") or ""),
            owner_hint=_optional_str(item.get("ownerHint")),
            due_date_hint=_optional_str(item.get("dueDateHint")),
            priority=_optional_str(item.get("priority")),
            rationale=_optional_str(item.get("rationale")),
        )
        for item in raw_recommendations
        if isinstance(item, dict)
    ]

    metrics = parsed.get("metrics")
    summary = parsed.get("summary")

    return ParsedPersonaPayload(
        summary="" if summary is None else str(summary),
        risks=_str_list(parsed.get("risks")),
        opportunities=_str_list(parsed.get("opportunities")),
        recommendations=recommendations,
        metrics=metrics if isinstance(metrics, dict) else None,
    )


def payload_from_turn_metrics(metrics: dict[str, Any] | None) -> ParsedPersonaPayload | None:
    """Return the parsed payload cached on a persona turn, if one is usable."""
    if not metrics:
        return None
    cached = metrics.get("parsed")
    if not isinstance(cached, dict):
        return None
    try:
        return ParsedPersonaPayload.model_validate(cached)
    except ValueError:
        return None


def estimate_tokens(text: str) -> int:
    """Rough token estimate used for persona token accounting."""
    words = len(text.split())
    return max(1, round(words * 4 / 3)) if words else 0
