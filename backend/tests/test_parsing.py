"""Tests for prompt construction and LLM response parsing."""
import json

from privacy_reader.api.policy_analyzer.models import AnalysisResult, Score, fallback_analysis
from privacy_reader.api.policy_analyzer.parsing import extract_json_object, parse_analysis_response
from privacy_reader.api.policy_analyzer.prompts import TRUNCATION_MARKER, build_prompt, truncate_policy_text

from conftest import analysis_payload


def test_parse_plain_json():
    result = parse_analysis_response(json.dumps(analysis_payload()))
    assert result.analysis_status == "complete"
    assert result.score.value == 72
    assert result.data_collection["Personal"] == ["name", "email"]
    assert result.provider is None


def test_parse_json_wrapped_in_prose_and_fences():
    text = "Here is the analysis:\n```json\n" + json.dumps(analysis_payload()) + "\n```\nHope this helps {not json}."
    result = parse_analysis_response(text)
    assert result.is_complete
    assert result.red_flags == ["Broad third-party sharing"]


def test_braces_inside_strings_do_not_confuse_extraction():
    obj = {"summary": ["uses {curly} braces and \"quotes\""], "retention": "}"}
    assert extract_json_object("prefix " + json.dumps(obj) + " suffix") == obj


def test_garbage_yields_fixed_fallback():
    result = parse_analysis_response("I'm sorry, I cannot analyze this document.")
    assert result == fallback_analysis()
    assert result.analysis_status == "failed"
    assert result.score.value == 0
    assert result.score.explanation == "Analysis failed, manual review required"
    assert result.red_flags == ["Analysis could not complete successfully"]


def test_non_object_json_yields_fallback():
    assert parse_analysis_response("[1, 2, 3]").analysis_status == "failed"
    assert parse_analysis_response("").analysis_status == "failed"


def test_loose_shapes_are_coerced():
    payload = analysis_payload(
        summary="One line summary",
        dataCollection=["email", "ip address"],
        score="130",
        retention=["30 days", "logs 1 year"],
    )
    result = parse_analysis_response(json.dumps(payload))
    assert result.summary == ["One line summary"]
    assert result.data_collection == {"General": ["email", "ip address"]}
    assert result.score == Score(value=100, explanation="")
    assert result.retention == "30 days; logs 1 year"


def test_model_supplied_status_is_ignored():
    payload = analysis_payload(analysisStatus="placeholder", provider="made-up")
    result = parse_analysis_response(json.dumps(payload))
    assert result.analysis_status == "complete"
    assert result.provider is None


def test_analysis_serializes_with_camel_case_aliases():
    dumped = AnalysisResult(red_flags=["x"]).model_dump(by_alias=True)
    assert "redFlags" in dumped
    assert "analysisStatus" in dumped


def test_truncation_appends_marker():
    assert truncate_policy_text("short", 10) == "short"
    assert truncate_policy_text("x" * 15, 10) == "x" * 10 + TRUNCATION_MARKER


def test_build_prompt_includes_metadata_and_truncated_text():
    prompt = build_prompt(
        url="https://acme.com/privacy",
        title="Acme Privacy Policy",
        text="y" * 50,
        company=None,
        last_updated="2024-01-01",
        max_chars=20,
    )
    assert "Policy URL: https://acme.com/privacy" in prompt
    assert "Company: Unknown" in prompt
    assert "Last Updated: 2024-01-01" in prompt
    assert "y" * 20 + TRUNCATION_MARKER in prompt
    assert "y" * 21 not in prompt
    assert '"redFlags": ["flag 1", "flag 2"]' in prompt
