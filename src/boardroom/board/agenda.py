"""Agenda normalization for board meeting requests.

Validates the client's optional agenda, substitutes the default agenda when
none is given, assigns ids to entries that lack one, and produces the
display copy (every section ``pending``) that seeds the meeting record and
the stream's initial snapshot.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Any, Callable

from pydantic import ValidationError

from src.boardroom.board.schemas import (
    AgendaItemInput,
    AgendaSection,
    AgendaSectionDisplay,
    BoardMeetingRequest,
    PersonaId,
    SectionStatus,
)

DEFAULT_AGENDA: tuple[AgendaSection, ...] = (
    AgendaSection(
        id="agenda-executive-overview",
        title="Executive Overview & Top Wins",
        persona_id=PersonaId.CEO,
    ),
    AgendaSection(
        id="agenda-financial-health",
        title="Financial Health & Runway",
        persona_id=PersonaId.CFO,
        depends_on="agenda-executive-overview",
    ),
    AgendaSection(
        id="agenda-growth-outlook",
        title="Growth Outlook & GTM Priorities",
        persona_id=PersonaId.CMO,
        depends_on="agenda-financial-health",
    ),
)

INVALID_AGENDA_MESSAGE = "Invalid board meeting configuration"


class AgendaValidationError(ValueError):
    """Raised when a board meeting request fails shape validation.

    ``details`` holds one entry per problem: ``{"path", "message"}``.
    """

    def __init__(self, details: list[dict[str, Any]], message: str = INVALID_AGENDA_MESSAGE) -> None:
        super().__init__(message)
        self.message = message
        self.details = details


@dataclass(frozen=True)
class NormalizedAgenda:
    sections: list[AgendaSection]
    display: list[AgendaSectionDisplay]
    agenda_version: int


def _generated_id(index: int) -> str:
    return f"agenda-{index}-{uuid.uuid4().hex[:8]}"


def _validation_details(exc: ValidationError) -> list[dict[str, Any]]:
    return [
        {
            "path": ".".join(str(part) for part in error["loc"]),
            "message": error["msg"],
        }
        for error in exc.errors()
    ]


def parse_request(body: Any) -> BoardMeetingRequest:
    """Validate a raw request body.

    Args:
        body: Decoded JSON body (``None`` is treated as an empty object).

    Raises:
        AgendaValidationError: On any shape violation, including duplicate
            supplied ids.
    """
    try:
        request = BoardMeetingRequest.model_validate(body if body is not None else {})
    except ValidationError as exc:
        raise AgendaValidationError(_validation_details(exc)) from exc

    seen: set[str] = set()
    duplicates: list[dict[str, Any]] = []
    for index, item in enumerate(request.agenda or []):
        if item.id is None:
            continue
        if item.id in seen:
            duplicates.append({
                "path": f"agenda.{index}.id",
                "message": f"Duplicate agenda id '{item.id}'",
            })
        seen.add(item.id)
    if duplicates:
        raise AgendaValidationError(duplicates)

    return request


def normalize_agenda(
    agenda: list[AgendaItemInput] | None,
    id_factory: Callable[[int], str] = _generated_id,
) -> list[AgendaSection]:
    """Turn client agenda entries into sections with guaranteed unique ids.

    Empty or missing input yields a fresh copy of DEFAULT_AGENDA. Entries
    without an id get ``agenda-{index}-{8 hex}``; a generated id that
    collides with any other id in the agenda is generated again.
    """
    if not agenda:
        return [section.model_copy() for section in DEFAULT_AGENDA]

    taken = {item.id for item in agenda if item.id is not None}
    sections: list[AgendaSection] = []
    for index, item in enumerate(agenda):
        section_id = item.id
        if section_id is None:
            section_id = id_factory(index)
            while section_id in taken:
                section_id = id_factory(index)
            taken.add(section_id)
        sections.append(
            AgendaSection(
                id=section_id,
                title=item.title,
                persona_id=item.persona_id,
                depends_on=item.depends_on,
            )
        )
    return sections


def to_display(sections: list[AgendaSection]) -> list[AgendaSectionDisplay]:
    return [
        AgendaSectionDisplay(**section.model_dump(), status=SectionStatus.PENDING)
        for section in sections
    ]


def prepare_agenda(body: Any) -> NormalizedAgenda:
    """Validate a request body and normalize its agenda in one step.

    This is the only synchronous failure point of starting a meeting:
    nothing has been created when it raises.
    """
    request = parse_request(body)
    sections = normalize_agenda(request.agenda)
    return NormalizedAgenda(
        sections=sections,
        display=to_display(sections),
        agenda_version=request.agenda_version,
    )
