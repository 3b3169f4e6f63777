"""Tests for persona registry and persona response parsing."""

from __future__ import annotations

import json

from src.boardroom.board.personas import (
    estimate_tokens,
    parse_persona_payload,
    payload_from_turn_metrics,
    persona_name,
)
from src.boardroom.board.schemas import PersonaId


class TestPersonaNames:
    def test_known_personas(self):
        assert persona_name(PersonaId.CEO) == "CEO"
        assert persona_name("cfo") == "CFO"
        assert persona_name(PersonaId.CMO) == "CMO"

    def test_unknown_persona_falls_back_to_upper_id(self):
        assert persona_name("coo") == "COO"


class TestParsePersonaPayload:
    def test_full_json_payload(self):
        raw = json.dumps({
            "summary": "Runway is 18 months",
            "risks": ["Burn rising"],
            "opportunities": ["Cut vendor spend"],
            "recommendations": [
                {
                    "title": "Renegotiate contracts",
                    "ownerHint": "Finance",
                    "dueDateHint": "Q3",
                    "priority": "high",
                    "rationale": "Saves 10%",
                }
            ],
            "metrics": {"runwayMonths": 18},
        })

        payload = parse_persona_payload(raw)

        assert payload.summary == "Runway is 18 months"
        assert payload.risks == ["Burn rising"]
        assert payload.opportunities == ["Cut vendor spend"]
        assert payload.recommendations[0].title == "Renegotiate contracts"
        assert payload.recommendations[0].owner_hint == "Finance"
        assert payload.recommendations[0].due_date_hint == "Q3"
        assert payload.recommendations[0].priority == "high"
        assert payload.metrics == {"runwayMonths": 18}

    def test_plain_text_becomes_trimmed_summary(self):
        payload = parse_persona_payload("  We had a strong quarter.  \n")

        assert payload.summary == "We had a strong quarter."
        assert payload.risks == []
        assert payload.recommendations == []
        assert payload.metrics is None

    def test_json_that_is_not_an_object_becomes_summary(self):
        payload = parse_persona_payload('["a", "b"]')

        assert payload.summary == '["a", "b"]'
        assert payload.risks == []

    def test_wrong_field_types_are_ignored(self):
        payload = parse_persona_payload(json.dumps({
            "summary": "ok",
            "risks": "not a list",
            "recommendations": ["bare string", {"title": "Real one"}],
            "metrics": [1, 2],
        }))

        assert payload.risks == []
        assert [r.title for r in payload.recommendations] == ["Real one"]
        assert payload.metrics is None

    def test_missing_summary_is_empty(self):
        assert parse_persona_payload("{}").summary == ""


class TestCachedPayload:
    def test_cached_payload_is_used(self):
        metrics = {"parsed": {"summary": "cached", "risks": ["r1"], "recommendations": [{"title": "Do it"}]}}

        payload = payload_from_turn_metrics(metrics)

        assert payload is not None
        assert payload.summary == "cached"
        assert payload.recommendations[0].title == "Do it"

    def test_missing_or_invalid_cache_returns_none(self):
        assert payload_from_turn_metrics(None) is None
        assert payload_from_turn_metrics({"tokens": {}}) is None
        assert payload_from_turn_metrics({"parsed": "text"}) is None
        assert payload_from_turn_metrics({"parsed": {"risks": "nope"}}) is None


class TestEstimateTokens:
    def test_empty_text(self):
        assert estimate_tokens("") == 0
        assert estimate_tokens("   ") == 0

    def test_word_based_estimate(self):
        assert estimate_tokens("one") == 1
        assert estimate_tokens("one two three") == 4
