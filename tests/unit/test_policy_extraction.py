"""Unit tests for policy document extraction (marker parser and AI extractor)."""

import json
from unittest.mock import MagicMock, patch

import pytest

from risk_tiering.exceptions import APIError, ExtractionConfigurationError, ExtractionError
from risk_tiering.policy.extraction import (
    MARKER_CONFIDENCE,
    MarkerPolicyParser,
    OpenAIPolicyExtractor,
    extract_policy,
)
from risk_tiering.schemas.policy import PolicyExtraction, RuleChangeKind

POLICY_TEXT = """# Model Risk Management Policy v2025

## Tier 3 (High Risk)
Validation Frequency: 6 months
Independent validation is required before deployment.

## Tier 2 (Medium Risk)
Validation frequency: every 18 months

## Tier 1 (Low Risk)
Revalidation every 36 months.

## Rule changes
[NEW] Generative AI used internally for drafting (T2)
[MODIFIED] R_PII_PROCESSING: elevated from T2 to T3
[REMOVED] R_SENSITIVE_ATTRIBUTES no longer applies (T2)
"""

TABLE_TEXT = """
| Tier | Validation frequency |
|------|----------------------|
| T3   | 9 months             |
| T2   | 24 months            |

Tier 3 models: validation frequency is 12 months in the legacy appendix.
"""


def mock_client(payload):
    """OpenAI-style client returning the given JSON payload."""
    client = MagicMock()
    response = MagicMock()
    response.choices = [MagicMock()]
    response.choices[0].message.content = json.dumps(payload) if not isinstance(payload, str) else payload
    client.chat.completions.create.return_value = response
    return client


class TestMarkerPolicyParser:
    def test_frequencies_from_sections(self):
        extraction = MarkerPolicyParser().extract(POLICY_TEXT)
        assert extraction.validation_frequencies == {"T3": 6, "T2": 18, "T1": 36}
        assert extraction.source == "marker"
        assert extraction.confidence == MARKER_CONFIDENCE

    def test_table_rows_win_over_prose(self):
        freqs = MarkerPolicyParser().parse_frequencies(TABLE_TEXT, ["T3", "T2", "T1"])
        assert freqs == {"T3": 9, "T2": 24}

    def test_markers(self):
        markers = {m.id: m for m in MarkerPolicyParser().parse_markers(POLICY_TEXT, ["T3", "T2", "T1"])}

        new = markers["R_GENERATIVE_AI_USED_INTERNALLY_FOR_DRAFTING"]
        assert new.kind == RuleChangeKind.NEW
        assert new.tier == "T2"

        modified = markers["R_PII_PROCESSING"]
        assert modified.kind == RuleChangeKind.MODIFIED
        assert (modified.previous_tier, modified.tier) == ("T2", "T3")

        assert markers["R_SENSITIVE_ATTRIBUTES"].kind == RuleChangeKind.REMOVED

    def test_nothing_found(self):
        extraction = MarkerPolicyParser().extract("This document says nothing useful.")
        assert extraction.validation_frequencies == {}
        assert extraction.rule_markers == []
        assert extraction.confidence == 0.0
        assert extraction.notes == ["No validation frequencies found in document"]

    def test_unknown_tiers_ignored(self):
        text = "## Tier 4\nValidation frequency: 3 months\n"
        assert MarkerPolicyParser().parse_frequencies(text, ["T3", "T2", "T1"]) == {}


class TestOpenAIPolicyExtractor:
    def test_extract_parses_structured_response(self):
        client = mock_client(
            {
                "validation_frequencies": [{"tier": "T3", "months": 6}, {"tier": "T9", "months": 3}],
                "rule_markers": [{"id": "R_GENAI_INTERNAL", "name": "Internal GenAI", "kind": "new", "tier": "T2"}],
                "confidence": 0.9,
                "notes": [],
            }
        )
        extractor = OpenAIPolicyExtractor(client=client, model="gpt-4o", retries=1)

        extraction = extractor.extract(POLICY_TEXT, ["T3", "T2", "T1"], {"T3": 12})

        assert extraction.source == "ai"
        assert extraction.validation_frequencies == {"T3": 6}
        assert extraction.rule_markers[0].id == "R_GENAI_INTERNAL"
        assert extraction.confidence == 0.9

        kwargs = client.chat.completions.create.call_args.kwargs
        assert kwargs["model"] == "gpt-4o"
        assert kwargs["response_format"]["type"] == "json_schema"
        assert kwargs["messages"][0]["role"] == "system"
        assert "Tier 3 (High Risk)" in kwargs["messages"][1]["content"]

    def test_non_positive_months_dropped(self):
        client = mock_client({"validation_frequencies": [{"tier": "T3", "months": 0}]})
        extraction = OpenAIPolicyExtractor(client=client, retries=1).extract("x", ["T3"], {})
        assert extraction.validation_frequencies == {}

    def test_invalid_json_raises(self):
        extractor = OpenAIPolicyExtractor(client=mock_client("not json"), retries=1)
        with pytest.raises(ExtractionError, match="Unusable"):
            extractor.extract("x", ["T3"], {})

    @patch("risk_tiering.policy.extraction.time.sleep")
    def test_retries_then_raises(self, mock_sleep):
        client = MagicMock()
        client.chat.completions.create.side_effect = RuntimeError("connection reset")
        extractor = OpenAIPolicyExtractor(client=client, retries=3)

        with pytest.raises(APIError, match="after 3 attempts"):
            extractor.extract("x", ["T3"], {})
        assert client.chat.completions.create.call_count == 3
        assert [c.args[0] for c in mock_sleep.call_args_list] == [1, 2]

    def test_authentication_error_not_retried(self):
        client = MagicMock()
        client.chat.completions.create.side_effect = RuntimeError("Authentication failed: bad api_key")
        extractor = OpenAIPolicyExtractor(client=client, retries=3)

        with pytest.raises(ExtractionConfigurationError):
            extractor.extract("x", ["T3"], {})
        assert client.chat.completions.create.call_count == 1

    def test_missing_credentials(self, monkeypatch):
        for var in ("AZURE_OPENAI_API_KEY", "AZURE_OPENAI_ENDPOINT", "AZURE_OPENAI_BASE_URL", "OPENAI_API_KEY"):
            monkeypatch.delenv(var, raising=False)
        with pytest.raises(ExtractionConfigurationError, match="No OpenAI credentials"):
            OpenAIPolicyExtractor()

    def test_missing_prompt(self):
        with pytest.raises(ExtractionConfigurationError, match="prompt"):
            OpenAIPolicyExtractor(client=MagicMock(), prompt_name="does_not_exist")


class TestExtractPolicy:
    def test_marker_only_without_extractor(self):
        extraction = extract_policy(POLICY_TEXT)
        assert extraction.source == "marker"
        assert extraction.validation_frequencies["T3"] == 6

    def test_falls_back_when_extractor_fails(self):
        extractor = MagicMock()
        extractor.extract.side_effect = APIError("service unavailable")

        extraction = extract_policy(POLICY_TEXT, extractor=extractor)

        assert extraction.source == "marker"
        assert extraction.validation_frequencies == {"T3": 6, "T2": 18, "T1": 36}
        assert any("AI extraction unavailable" in note for note in extraction.notes)

    def test_ai_values_win_and_markers_fill_gaps(self):
        extractor = MagicMock()
        extractor.extract.return_value = PolicyExtraction(
            validation_frequencies={"T3": 3}, confidence=0.95, source="ai"
        )

        extraction = extract_policy(POLICY_TEXT, extractor=extractor)

        assert extraction.source == "ai"
        assert extraction.validation_frequencies == {"T3": 3, "T2": 18, "T1": 36}
        assert {m.id for m in extraction.rule_markers} >= {"R_PII_PROCESSING", "R_SENSITIVE_ATTRIBUTES"}
