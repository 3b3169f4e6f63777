"""Persona responders -- the content source the orchestrator asks for each section."""

from __future__ import annotations

from dataclasses import dataclass

import structlog

from src.boardroom.board.personas import estimate_tokens, get_persona
from src.boardroom.board.schemas import AgendaSection, BoardMeetingJob
from src.boardroom.core.monitoring import track_llm_call
from src.boardroom.services.llm import LLMService

logger = structlog.get_logger(__name__)

RESPONSE_INSTRUCTION = (
    "Provide your analysis now following the JSON schema. "
    "Do not include any markdown or commentary outside the JSON."
)

RESPONSE_SCHEMA_HINT = (
    '{"summary": string, "risks": [string], "opportunities": [string], '
    '"recommendations": [{"title": string, "ownerHint": string, '
    '"dueDateHint": string, "priority": "low"|"medium"|"high"|"urgent", '
    '"rationale": string}], "metrics": object}'
)


@dataclass(frozen=True)
class PersonaResponse:
    content: str
    input_tokens: int
    output_tokens: int
    latency_ms: int = 0

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


def agenda_outline(agenda: list[AgendaSection]) -> str:
    return "\n".join(
        f"{index}. {section.title} ({section.persona_id.value.upper()})"
        for index, section in enumerate(agenda, start=1)
    )


def build_messages(section: AgendaSection, agenda: list[AgendaSection]) -> list[dict]:
    persona = get_persona(section.persona_id)
    system = (
        f"You are the {persona.name} presenting to the board. "
        f"Focus on {persona.focus}.\n\n"
        f"Meeting agenda:\n{agenda_outline(agenda)}\n\n"
        f"Your section: {section.title}\n\n"
        f"Answer with a single JSON object of the form {RESPONSE_SCHEMA_HINT}."
    )
    return [
        {"role": "system", "content": system},
        {"role": "user", "content": RESPONSE_INSTRUCTION},
    ]


class LLMPersonaResponder:
    """Generates persona responses by streaming from the LLM service.

    Args:
        llm_service: LLMService used for streaming completions.
        model: Router model group name.
    """

    def __init__(self, llm_service: LLMService, model: str = "reasoning") -> None:
        self._llm = llm_service
        self._model = model

    async def respond(
        self,
        job: BoardMeetingJob,
        section: AgendaSection,
        agenda: list[AgendaSection],
    ) -> PersonaResponse:
        messages = build_messages(section, agenda)
        chunks: list[str] = []

        async with track_llm_call(self._model, section.persona_id.value) as tracker:
            async for chunk in self._llm.streaming_completion(
                messages,
                model=self._model,
                metadata={
                    "tenant_id": job.tenant_id,
                    "user_id": job.user_id,
                    "meeting_id": job.meeting_id,
                    "persona_id": section.persona_id.value,
                },
            ):
                chunks.append(chunk)
            content = "".join(chunks).strip()
            tracker["tokens"] = estimate_tokens(content)

        input_tokens = sum(estimate_tokens(m["content"]) for m in messages)
        logger.debug(
            "board.persona_responded",
            meeting_id=job.meeting_id,
            persona_id=section.persona_id.value,
            output_tokens=tracker["tokens"],
            latency_ms=tracker["latency_ms"],
        )
        return PersonaResponse(
            content=content,
            input_tokens=input_tokens,
            output_tokens=tracker["tokens"],
            latency_ms=tracker["latency_ms"],
        )
