"""Tests for agenda validation and normalization."""

from __future__ import annotations

import re

import pytest

from src.boardroom.board.agenda import (
    DEFAULT_AGENDA,
    INVALID_AGENDA_MESSAGE,
    AgendaValidationError,
    normalize_agenda,
    parse_request,
    prepare_agenda,
    to_display,
)
from src.boardroom.board.schemas import AgendaItemInput, PersonaId, SectionStatus


class TestDefaultAgenda:
    def test_missing_body_uses_default_agenda(self):
        agenda = prepare_agenda(None)

        assert [s.id for s in agenda.sections] == [
            "agenda-executive-overview",
            "agenda-financial-health",
            "agenda-growth-outlook",
        ]
        assert [s.persona_id for s in agenda.sections] == [PersonaId.CEO, PersonaId.CFO, PersonaId.CMO]
        assert agenda.sections[1].depends_on == "agenda-executive-overview"
        assert agenda.sections[2].depends_on == "agenda-financial-health"
        assert agenda.agenda_version == 1

    def test_empty_agenda_list_uses_default_agenda(self):
        agenda = prepare_agenda({"agenda": [], "agendaVersion": 3})

        assert len(agenda.sections) == 3
        assert agenda.sections[0].title == "Executive Overview & Top Wins"
        assert agenda.agenda_version == 3

    def test_default_agenda_is_copied(self):
        sections = normalize_agenda(None)
        sections[0].title = "Changed"

        assert DEFAULT_AGENDA[0].title == "Executive Overview & Top Wins"

    def test_display_copy_is_all_pending(self):
        agenda = prepare_agenda({})

        assert all(s.status == SectionStatus.PENDING for s in agenda.display)
        assert [s.id for s in agenda.display] == [s.id for s in agenda.sections]


class TestNormalization:
    def test_supplied_ids_are_kept_and_order_preserved(self):
        agenda = prepare_agenda({
            "agenda": [
                {"id": "b", "title": "Second", "personaId": "cfo"},
                {"id": "a", "title": "First", "personaId": "ceo", "dependsOn": "b"},
            ]
        })

        assert [s.id for s in agenda.sections] == ["b", "a"]
        assert agenda.sections[1].depends_on == "b"

    def test_missing_ids_are_generated_with_index(self):
        agenda = prepare_agenda({
            "agenda": [
                {"title": "Plan", "personaId": "ceo"},
                {"id": "fixed", "title": "Money", "personaId": "cfo"},
                {"title": "Growth", "personaId": "cmo"},
            ]
        })

        assert re.fullmatch(r"agenda-0-[0-9a-f]{8}", agenda.sections[0].id)
        assert agenda.sections[1].id == "fixed"
        assert re.fullmatch(r"agenda-2-[0-9a-f]{8}", agenda.sections[2].id)

    def test_generated_id_colliding_with_supplied_id_is_regenerated(self):
        generated = iter(["taken", "taken", "agenda-0-fresh"])
        items = [
            AgendaItemInput(title="Plan", persona_id=PersonaId.CEO),
            AgendaItemInput(id="taken", title="Money", persona_id=PersonaId.CFO),
        ]

        sections = normalize_agenda(items, id_factory=lambda index: next(generated))

        assert [s.id for s in sections] == ["agenda-0-fresh", "taken"]

    def test_generated_ids_are_unique_among_themselves(self):
        generated = iter(["dup", "dup", "other"])
        items = [
            AgendaItemInput(title="One", persona_id=PersonaId.CEO),
            AgendaItemInput(title="Two", persona_id=PersonaId.CFO),
        ]

        sections = normalize_agenda(items, id_factory=lambda index: next(generated))

        assert [s.id for s in sections] == ["dup", "other"]

    def test_to_display_sets_pending(self):
        display = to_display(list(DEFAULT_AGENDA))

        assert [s.status for s in display] == [SectionStatus.PENDING] * 3


class TestValidation:
    def _details(self, body) -> list[dict]:
        with pytest.raises(AgendaValidationError) as exc_info:
            parse_request(body)
        assert str(exc_info.value) == INVALID_AGENDA_MESSAGE
        return exc_info.value.details

    def test_unknown_persona_rejected(self):
        details = self._details({"agenda": [{"title": "X", "personaId": "cto"}]})

        assert any(d["path"].startswith("agenda.0.personaId") for d in details)

    def test_empty_title_rejected(self):
        details = self._details({"agenda": [{"title": "", "personaId": "ceo"}]})

        assert any(d["path"] == "agenda.0.title" for d in details)

    def test_missing_title_rejected(self):
        details = self._details({"agenda": [{"personaId": "ceo"}]})

        assert any(d["path"] == "agenda.0.title" for d in details)

    def test_empty_id_rejected(self):
        details = self._details({"agenda": [{"id": "", "title": "X", "personaId": "ceo"}]})

        assert any(d["path"] == "agenda.0.id" for d in details)

    def test_empty_depends_on_rejected(self):
        details = self._details({"agenda": [{"title": "X", "personaId": "ceo", "dependsOn": ""}]})

        assert any(d["path"] == "agenda.0.dependsOn" for d in details)

    def test_agenda_must_be_list(self):
        details = self._details({"agenda": "not-a-list"})

        assert details[0]["path"] == "agenda"

    @pytest.mark.parametrize("version", [0, 100, -1])
    def test_agenda_version_out_of_range(self, version):
        details = self._details({"agendaVersion": version})

        assert details[0]["path"] == "agendaVersion"

    @pytest.mark.parametrize("version", [1.5, "2"])
    def test_agenda_version_must_be_integer(self, version):
        details = self._details({"agendaVersion": version})

        assert details[0]["path"] == "agendaVersion"

    @pytest.mark.parametrize("version", [1, 99])
    def test_agenda_version_bounds_accepted(self, version):
        assert parse_request({"agendaVersion": version}).agenda_version == version

    def test_duplicate_supplied_ids_rejected(self):
        details = self._details({
            "agenda": [
                {"id": "same", "title": "One", "personaId": "ceo"},
                {"id": "same", "title": "Two", "personaId": "cfo"},
            ]
        })

        assert details == [{"path": "agenda.1.id", "message": "Duplicate agenda id 'same'"}]

    def test_body_must_be_object(self):
        with pytest.raises(AgendaValidationError):
            parse_request(["agenda"])
