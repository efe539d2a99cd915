"""Unit tests for the extraction response contract."""

import json

import pytest
from pydantic import ValidationError

from ace.extraction.errors import EmptyOrMalformedResponse, SchemaViolation
from ace.extraction.invoker import ExtractionInvoker
from ace.extraction.schema import RESPONSE_SCHEMA, ExtractionResponse

from tests.helpers import build_response, response_json


class TestExtractionResponse:
    """Tests for strict validation of the model's JSON."""

    def test_valid_payload(self) -> None:
        response = ExtractionResponse.model_validate_json(response_json())
        assert response.arxiv_id == "2405.12345v1"
        assert response.verification.id_comparison.html_version == "v1"
        assert response.verification.title_comparison.source_used == "HTML"
        assert response.authors[0].affiliation_indices == [0]
        assert response.authors[1].is_corresponding is None
        assert response.references[0].full_text.startswith("Kobayashi")

    def test_optional_lists_default_empty(self) -> None:
        payload = build_response()
        del payload["keywords"]
        del payload["categories"]
        response = ExtractionResponse.model_validate_json(json.dumps(payload))
        assert response.keywords == []
        assert response.categories == []

    def test_unknown_fields_ignored(self) -> None:
        response = ExtractionResponse.model_validate_json(response_json(extraNote="hello"))
        assert response.title == "Fast Learning"

    def test_missing_required_field(self) -> None:
        payload = build_response()
        del payload["abstract"]
        with pytest.raises(ValidationError):
            ExtractionResponse.model_validate_json(json.dumps(payload))

    def test_strings_are_not_coerced_to_numbers(self) -> None:
        payload = build_response()
        payload["verification"]["authorComparison"]["pdfCount"] = "2"
        with pytest.raises(ValidationError):
            ExtractionResponse.model_validate_json(json.dumps(payload))

    def test_numbers_are_not_coerced_to_strings(self) -> None:
        with pytest.raises(ValidationError):
            ExtractionResponse.model_validate_json(response_json(title=42))

    def test_unknown_status_rejected(self) -> None:
        payload = build_response()
        payload["verification"]["status"] = "PROBABLY_FINE"
        with pytest.raises(ValidationError):
            ExtractionResponse.model_validate_json(json.dumps(payload))

    def test_fractional_affiliation_index_rejected(self) -> None:
        payload = build_response()
        payload["authors"][0]["affiliationIndices"] = [0.5]
        with pytest.raises(ValidationError, match="whole number"):
            ExtractionResponse.model_validate_json(json.dumps(payload))


class TestParse:
    """Tests for turning response text into a validated payload."""

    @pytest.mark.parametrize("text", ["", "   \n"])
    def test_empty_body(self, text: str) -> None:
        with pytest.raises(EmptyOrMalformedResponse) as exc_info:
            ExtractionInvoker.parse(text)
        assert not isinstance(exc_info.value, SchemaViolation)

    def test_not_json(self) -> None:
        with pytest.raises(SchemaViolation):
            ExtractionInvoker.parse("Sorry, I cannot help with that.")

    def test_schema_violation_is_malformed(self) -> None:
        with pytest.raises(EmptyOrMalformedResponse):
            ExtractionInvoker.parse(json.dumps({"title": "only"}))


def test_response_schema_requires_core_fields() -> None:
    assert RESPONSE_SCHEMA["type"] == "OBJECT"
    required = set(RESPONSE_SCHEMA["required"])
    assert {"verification", "arxivId", "title", "authors", "affiliations", "abstract", "references"} <= required
    status = RESPONSE_SCHEMA["properties"]["verification"]["properties"]["status"]
    assert "MATCH_BY_TITLE" in status["enum"]
