"""Policy document extraction.

Turns a free-text policy document into a PolicyExtraction: per-tier
validation frequencies plus coarse rule-change markers.

Two extractors are provided:
- MarkerPolicyParser: deterministic, regex based. Understands "Tier N ...
  Validation Frequency ... N months" sections, markdown table rows such as
  "| T3 | 6 months |", and [NEW] / [REMOVED] / [MODIFIED] markers. Never raises.
- OpenAIPolicyExtractor: LLM extraction with a JSON schema response format.

extract_policy() runs the AI extractor when one is given and falls back to
the marker parser on any failure, so an unreachable or misbehaving
extraction service never blocks a policy from being analyzed.
"""

import json
import logging
import re
import time
from typing import Any, Dict, List, Mapping, Optional, Protocol, Sequence

from pydantic import BaseModel, Field, ValidationError

from risk_tiering.exceptions import APIError, ExtractionConfigurationError, ExtractionError
from risk_tiering.schemas.policy import PolicyExtraction, RuleChangeKind, RuleMarker
from risk_tiering.services.openai_client import get_client_and_model
from risk_tiering.utils.prompt_loader import load_prompt

logger = logging.getLogger(__name__)

MARKER_CONFIDENCE = 0.7

_MONTHS_RE = re.compile(r"(\d+)\s*-?\s*months?\b", re.IGNORECASE)
_FREQUENCY_HINT_RE = re.compile(r"validat\w*\s+(frequency|every|cycle|interval)|revalidat", re.IGNORECASE)
_TIER_WORD_RE = re.compile(r"\btier\s*(\d+)\b", re.IGNORECASE)
_TABLE_ROW_RE = re.compile(r"^\s*\|(?P<first>[^|]+)\|(?P<rest>.*)$")
_MARKER_RE = re.compile(r"\[(NEW|REMOVED|MODIFIED)\][:\s]*([^\n]+)", re.IGNORECASE)
_RULE_ID_RE = re.compile(r"\bR_[A-Z0-9_]+\b")
_ARROW_RE = re.compile(r"(?:->|→|\bto\b)", re.IGNORECASE)


class PolicyExtractor(Protocol):
    """Anything that can extract a PolicyExtraction from document text."""

    def extract(
        self,
        text: str,
        tiers: Sequence[str],
        current_frequencies: Mapping[str, int],
    ) -> PolicyExtraction:
        ...


def _tiers_in(text: str, tiers: Sequence[str]) -> List[str]:
    """Tier keys mentioned in text, in order of appearance."""
    found = []
    for key in tiers:
        for match in re.finditer(rf"\b{re.escape(key)}\b", text):
            found.append((match.start(), key))
    for match in _TIER_WORD_RE.finditer(text):
        key = f"T{match.group(1)}"
        if key in tiers:
            found.append((match.start(), key))

    ordered = []
    for _, key in sorted(found):
        if not ordered or ordered[-1] != key:
            ordered.append(key)
    return ordered


def _rule_id_from_name(name: str) -> str:
    words = re.findall(r"[A-Za-z0-9]+", name)
    return "R_" + "_".join(w.upper() for w in words[:6]) if words else "R_UNNAMED"


def _clean_marker_text(text: str) -> str:
    return text.strip().strip("*_#:-").strip()


class MarkerPolicyParser:
    """Deterministic extractor for conventionally formatted policy documents."""

    def extract(
        self,
        text: str,
        tiers: Sequence[str] = ("T3", "T2", "T1"),
        current_frequencies: Optional[Mapping[str, int]] = None,
    ) -> PolicyExtraction:
        frequencies = self.parse_frequencies(text, tiers)
        markers = self.parse_markers(text, tiers)

        notes = []
        if not frequencies:
            notes.append("No validation frequencies found in document")
        found_anything = bool(frequencies or markers)

        return PolicyExtraction(
            validation_frequencies=frequencies,
            rule_markers=markers,
            confidence=MARKER_CONFIDENCE if found_anything else 0.0,
            notes=notes,
            source="marker",
        )

    def parse_frequencies(self, text: str, tiers: Sequence[str]) -> Dict[str, int]:
        """Find tier -> months statements.

        Table rows win over prose because they are unambiguous; within
        prose the last statement for a tier wins.
        """
        prose: Dict[str, int] = {}
        table: Dict[str, int] = {}
        current_tier: Optional[str] = None

        for line in text.splitlines():
            row = _TABLE_ROW_RE.match(line)
            if row:
                row_tiers = _tiers_in(row.group("first"), tiers)
                months = _MONTHS_RE.search(row.group("rest"))
                if len(row_tiers) == 1 and months:
                    table[row_tiers[0]] = int(months.group(1))
                continue

            line_tiers = _tiers_in(line, tiers)
            if len(line_tiers) == 1:
                current_tier = line_tiers[0]
            elif len(line_tiers) > 1:
                current_tier = None

            if current_tier and _FREQUENCY_HINT_RE.search(line):
                months = _MONTHS_RE.search(line)
                if months:
                    prose[current_tier] = int(months.group(1))

        frequencies = {**prose, **table}
        return {tier: months for tier, months in frequencies.items() if months > 0}

    def parse_markers(self, text: str, tiers: Sequence[str]) -> List[RuleMarker]:
        markers: Dict[str, RuleMarker] = {}
        for match in _MARKER_RE.finditer(text):
            kind = RuleChangeKind(match.group(1).lower())
            body = _clean_marker_text(match.group(2))
            if not body:
                continue

            explicit_id = _RULE_ID_RE.search(body)
            name = _clean_marker_text(_RULE_ID_RE.sub("", body)) or body
            rule_id = explicit_id.group(0) if explicit_id else _rule_id_from_name(name)

            mentioned = _tiers_in(body, tiers)
            tier = mentioned[-1] if mentioned else None
            previous_tier = None
            if kind == RuleChangeKind.MODIFIED and len(mentioned) >= 2 and _ARROW_RE.search(body):
                previous_tier = mentioned[0]

            if rule_id in markers:
                continue
            markers[rule_id] = RuleMarker(
                id=rule_id,
                name=name,
                kind=kind,
                tier=tier,
                previous_tier=previous_tier,
            )
        return list(markers.values())


class _TierFrequency(BaseModel):
    tier: str
    months: int


class _ExtractionResponse(BaseModel):
    """Response schema requested from the model."""

    validation_frequencies: List[_TierFrequency] = Field(default_factory=list)
    rule_markers: List[RuleMarker] = Field(default_factory=list)
    rules: List[Dict[str, Any]] = Field(default_factory=list)
    confidence: float = Field(default=0.8, ge=0.0, le=1.0)
    notes: List[str] = Field(default_factory=list)


class OpenAIPolicyExtractor:
    """LLM-backed policy extraction using Structured Outputs."""

    def __init__(
        self,
        client: Any = None,
        model: Optional[str] = None,
        prompt_name: str = "policy_extraction",
        retries: int = 3,
        timeout: float = 60.0,
    ):
        """Initialize the extractor.

        Args:
            client: OpenAI-compatible client. Created from the environment
                when omitted.
            model: Model override; defaults to the prompt's configured model.
            prompt_name: Prompt file in the prompts/ directory.
            retries: Attempts per extraction.
            timeout: Request timeout in seconds.

        Raises:
            ExtractionConfigurationError: If the prompt cannot be loaded or
                no credentials are available.
        """
        self.prompt_name = prompt_name
        self.retries = retries
        self.timeout = timeout

        try:
            config = load_prompt(
                prompt_name, policy_text="", tiers=[], current_frequencies={}
            )["config"]
        except (FileNotFoundError, ValueError) as e:
            raise ExtractionConfigurationError(f"Failed to load prompt configuration: {e}")

        self.temperature = config.get("temperature", 0.1)
        self.max_tokens = config.get("max_tokens", 4000)
        configured_model = model or config.get("model", "gpt-4o")

        if client is None:
            try:
                client, configured_model = get_client_and_model(configured_model, timeout)
            except ValueError as e:
                raise ExtractionConfigurationError(str(e))
        self.client = client
        self.model = configured_model

        logger.debug(f"Policy extractor ready: model={self.model}, prompt={self.prompt_name}")

    def _response_format(self) -> Dict[str, Any]:
        return {
            "type": "json_schema",
            "json_schema": {
                "name": "PolicyExtraction",
                "strict": False,
                "schema": _ExtractionResponse.model_json_schema(),
            },
        }

    def _call_api_with_retry(self, messages: List[Dict[str, str]]) -> str:
        last_error: Optional[Exception] = None

        for attempt in range(self.retries):
            try:
                response = self.client.chat.completions.create(
                    model=self.model,
                    messages=messages,
                    temperature=self.temperature,
                    max_tokens=self.max_tokens,
                    response_format=self._response_format(),
                )
                content = response.choices[0].message.content
                if not content:
                    raise APIError("Empty response from API")
                return content
            except Exception as e:
                error_str = str(e).lower()
                if "api_key" in error_str or "authentication" in error_str:
                    raise ExtractionConfigurationError(f"Invalid API key: {e}")
                last_error = e
                logger.warning(f"Policy extraction call failed (attempt {attempt + 1}/{self.retries}): {e}")

            if attempt < self.retries - 1:
                wait_time = 2 ** attempt
                logger.debug(f"Waiting {wait_time}s before retry...")
                time.sleep(wait_time)

        raise APIError(f"API call failed after {self.retries} attempts: {last_error}")

    def extract(
        self,
        text: str,
        tiers: Sequence[str],
        current_frequencies: Mapping[str, int],
    ) -> PolicyExtraction:
        """Extract frequencies and rule markers with the model.

        Raises:
            ExtractionError: On API failure or an unusable response.
        """
        messages = load_prompt(
            self.prompt_name,
            policy_text=text,
            tiers=list(tiers),
            current_frequencies=dict(current_frequencies),
        )["messages"]

        content = self._call_api_with_retry(messages)
        try:
            parsed = _ExtractionResponse.model_validate(json.loads(content))
        except (json.JSONDecodeError, ValidationError) as e:
            raise ExtractionError(f"Unusable extraction response: {e}")

        frequencies = {}
        for entry in parsed.validation_frequencies:
            if tiers and entry.tier not in tiers:
                logger.warning(f"Ignoring frequency for unknown tier {entry.tier}")
                continue
            if entry.months <= 0:
                logger.warning(f"Ignoring non-positive frequency for {entry.tier}: {entry.months}")
                continue
            frequencies[entry.tier] = entry.months

        return PolicyExtraction(
            validation_frequencies=frequencies,
            rule_markers=parsed.rule_markers,
            rules=parsed.rules,
            confidence=parsed.confidence,
            notes=parsed.notes,
            source="ai",
        )


def _merge(primary: PolicyExtraction, markers: PolicyExtraction) -> PolicyExtraction:
    """Fill gaps in an AI extraction with deterministic findings."""
    known_ids = {m.id for m in primary.rule_markers}
    rule_markers = list(primary.rule_markers) + [
        m for m in markers.rule_markers if m.id not in known_ids
    ]
    return primary.model_copy(
        update={
            "validation_frequencies": {
                **markers.validation_frequencies,
                **primary.validation_frequencies,
            },
            "rule_markers": rule_markers,
        }
    )


def extract_policy(
    text: str,
    extractor: Optional[PolicyExtractor] = None,
    tiers: Sequence[str] = ("T3", "T2", "T1"),
    current_frequencies: Optional[Mapping[str, int]] = None,
    fallback: Optional[MarkerPolicyParser] = None,
) -> PolicyExtraction:
    """Extract a policy document, falling back to marker parsing.

    Args:
        text: Policy document text.
        extractor: Optional AI extractor. When omitted only marker parsing runs.
        tiers: Tier keys of the active rule set.
        current_frequencies: Active frequencies, passed as context.
        fallback: Deterministic parser (defaults to MarkerPolicyParser()).

    Returns:
        PolicyExtraction. Never raises for extractor failures.
    """
    current_frequencies = current_frequencies or {}
    parser = fallback or MarkerPolicyParser()
    deterministic = parser.extract(text, tiers, current_frequencies)

    if extractor is None:
        return deterministic

    try:
        extracted = extractor.extract(text, tiers, current_frequencies)
    except Exception as e:
        logger.warning(f"AI policy extraction failed, using marker parsing: {e}")
        return deterministic.model_copy(
            update={"notes": deterministic.notes + [f"AI extraction unavailable ({e}); used marker parsing"]}
        )

    return _merge(extracted, deterministic)
