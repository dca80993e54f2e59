"""Turn raw LLM output into an AnalysisResult without ever raising."""

import json
import logging
from typing import Any

from pydantic import ValidationError

from privacy_reader.api.policy_analyzer.models import AnalysisResult, fallback_analysis

logger = logging.getLogger(__name__)

MAX_EMBEDDED_ATTEMPTS = 20


def _balanced_object_end(text: str, start: int) -> int | None:
    """Index one past the ``}`` closing the ``{`` at *start*, honouring JSON strings."""
    depth = 0
    in_string = False
    escaped = False
    for i in range(start, len(text)):
        ch = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return i + 1
    return None


def extract_json_object(text: str) -> dict[str, Any] | None:
    """
    Parse *text* as a JSON object, or find the first balanced ``{...}`` inside it.

    Returns None when nothing parses to a dict.
    """
    stripped = text.strip()
    try:
        parsed = json.loads(stripped)
        if isinstance(parsed, dict):
            return parsed
    except json.JSONDecodeError:
        pass

    start = stripped.find("{")
    attempts = 0
    while start != -1 and attempts < MAX_EMBEDDED_ATTEMPTS:
        attempts += 1
        end = _balanced_object_end(stripped, start)
        if end is None:
            break
        try:
            parsed = json.loads(stripped[start:end])
            if isinstance(parsed, dict):
                return parsed
        except json.JSONDecodeError:
            pass
        start = stripped.find("{", start + 1)
    return None


def parse_analysis_response(text: str) -> AnalysisResult:
    """
    Parse a provider response into the fixed analysis schema.

    Unparseable or schema-incompatible output yields ``fallback_analysis()``
    (``analysis_status == "failed"``).
    """
    data = extract_json_object(text or "")
    if data is None:
        logger.error("Could not find a JSON object in AI response (%d chars)", len(text or ""))
        return fallback_analysis()
    try:
        result = AnalysisResult.model_validate(data)
    except ValidationError as e:
        logger.error("AI response did not match the analysis schema: %s", e)
        return fallback_analysis()
    # Status and provider are ours to set, never the model's.
    return result.model_copy(update={"analysis_status": "complete", "provider": None})
