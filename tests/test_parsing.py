"""Unit tests for structured-block extraction."""

import json
from unittest.mock import patch

from italianbuddy.parsing import (
    extract_json_object,
    extract_structured_block,
    parse_response,
)

CORRECTIONS = {
    "errors": [
        {
            "mistake": "io sono andato con mia amici",
            "correction": "io sono andato con i miei amici",
            "type": "article",
            "explanation": "Plural possessives take the article.",
        },
        {
            "mistake": "ho andato",
            "correction": "sono andato",
            "type": "verb_conjugation",
            "explanation": "Andare takes essere in the passato prossimo.",
        },
    ]
}


def fenced(payload: str) -> str:
    return f"```json\n{payload}\n```"


class TestExtractStructuredBlock:
    def test_fenced_block_is_removed(self) -> None:
        block = fenced(json.dumps(CORRECTIONS))
        text = f"Che bello! Dove siete andati?\n\n{block}"

        payload, remainder = extract_structured_block(text)

        assert payload == CORRECTIONS
        assert remainder == "Che bello! Dove siete andati?"

    def test_bare_object_with_errors_key(self) -> None:
        text = 'Perfetto, nessun errore! {"errors": []}'

        payload, remainder = extract_structured_block(text)

        assert payload == {"errors": []}
        assert remainder == "Perfetto, nessun errore!"

    def test_first_match_wins(self) -> None:
        first = fenced('{"errors": [{"mistake": "a"}]}')
        second = fenced('{"errors": [{"mistake": "b"}]}')
        text = f"Ciao!\n{first}\nAltro testo\n{second}"

        payload, remainder = extract_structured_block(text)

        assert payload == {"errors": [{"mistake": "a"}]}
        assert second in remainder
        assert first not in remainder

    def test_no_block(self) -> None:
        text = "  Ciao! Come stai oggi?  "

        assert extract_structured_block(text) == (None, text)

    def test_malformed_block_returns_text_unchanged(self) -> None:
        text = "Bravo!\n" + fenced('{"errors": [ {"mistake": "x",, }')

        assert extract_structured_block(text) == (None, text)


class TestParseResponse:
    def test_well_formed_block(self) -> None:
        block = fenced(json.dumps(CORRECTIONS, indent=2))
        text = f"Benissimo! E poi cosa avete fatto?\n{block}"

        reply = parse_response(text)

        assert reply.grammar_corrections is not None
        assert len(reply.grammar_corrections.errors) == 2
        assert reply.grammar_corrections.errors[1].type == "verb_conjugation"
        assert reply.ai_message == "Benissimo! E poi cosa avete fatto?"
        assert "```" not in reply.ai_message
        assert "mistake" not in reply.ai_message

    def test_malformed_block_keeps_full_text(self) -> None:
        text = 'Ok!\n```json\n{"errors": [{"mistake": "x"}\n```\nCiao'

        reply = parse_response(text)

        assert reply.grammar_corrections is None
        assert reply.ai_message == text

    def test_unbalanced_bare_object_keeps_full_text(self) -> None:
        text = 'Quasi giusto {"errors": [{"mistake": "la problema"} e basta'

        reply = parse_response(text)

        assert reply.grammar_corrections is None
        assert reply.ai_message == text

    def test_no_markers(self) -> None:
        text = "Ciao! Oggi fa bel tempo a Roma."

        reply = parse_response(text)

        assert reply.grammar_corrections is None
        assert reply.ai_message == text

    def test_bare_list_is_accepted_as_errors(self) -> None:
        text = 'Ecco:\n```json\n[{"mistake": "a", "correction": "b"}]\n```'

        reply = parse_response(text)

        assert len(reply.grammar_corrections.errors) == 1
        assert reply.ai_message == "Ecco:"

    def test_block_that_is_not_a_correction_set(self) -> None:
        text = 'Risposta\n```json\n{"errors": "none"}\n```'

        reply = parse_response(text)

        assert reply.grammar_corrections is None
        assert reply.ai_message == text

    def test_null_and_numeric_fields_still_validate(self) -> None:
        text = (
            'Bravo!\n```json\n{"errors": [{"mistake": "la problema", '
            '"correction": "il problema", "type": "gender", "explanation": null, '
            '"line": 2}, {"mistake": 3, "correction": "tre"}]}\n```'
        )

        reply = parse_response(text)

        assert reply.ai_message == "Bravo!"
        assert reply.grammar_corrections is not None
        assert reply.grammar_corrections.errors[0].explanation is None
        assert reply.grammar_corrections.errors[0].correction == "il problema"
        assert reply.grammar_corrections.errors[1].mistake == 3

    def test_empty_correction_set_is_truthy(self) -> None:
        reply = parse_response(fenced('{"errors": []}'))

        assert reply.grammar_corrections
        assert reply.grammar_corrections.errors == []
        assert reply.ai_message == ""

    def test_extra_fields_are_kept(self) -> None:
        text = fenced('{"errors": [{"mistake": "a", "severity": "low"}], "score": 8}')

        reply = parse_response(text)

        dumped = reply.corrections_dict()
        assert dumped["score"] == 8
        assert dumped["errors"][0]["severity"] == "low"

    def test_unexpected_failure_degrades_to_plain_text(self) -> None:
        text = fenced('{"errors": []}')
        with patch(
            "italianbuddy.parsing.extract_structured_block",
            side_effect=RuntimeError("boom"),
        ):
            reply = parse_response(text)

        assert reply.grammar_corrections is None
        assert reply.ai_message == text


class TestExtractJsonObject:
    def test_first_object(self) -> None:
        text = 'Sure! {"example_italian": "Vado a casa.", "usage_note": "common"} thanks'

        assert extract_json_object(text) == {
            "example_italian": "Vado a casa.",
            "usage_note": "common",
        }

    def test_no_object(self) -> None:
        assert extract_json_object("Vado a casa.") is None

    def test_invalid_object(self) -> None:
        assert extract_json_object("{not json}") is None
