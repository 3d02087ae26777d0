"""Tests for decoding collaborator responses."""

from __future__ import annotations

import pytest

from memory_engine.core.errors import DecodeFailure
from memory_engine.models.decisions import MemoryAnalysis, UpdateDecision, UpdateScope
from memory_engine.utils.serialization import decode_json_object


def test_fenced_object_is_decoded() -> None:
    assert decode_json_object('```json\n{"a": 1}\n```') == {"a": 1}
    assert decode_json_object(b'  {"a": 2}  ') == {"a": 2}


@pytest.mark.parametrize("raw", [None, "", "```\n```", "nope", "[1]", '"text"'])
def test_non_objects_raise_decode_failure(raw) -> None:
    with pytest.raises(DecodeFailure):
        decode_json_object(raw)


def test_decode_failure_keeps_raw_text() -> None:
    with pytest.raises(DecodeFailure) as info:
        decode_json_object("definitely not json")
    assert info.value.raw == "definitely not json"
    assert info.value.error_code == "decode_failure"


def test_analysis_target_is_constrained_to_markdown_names() -> None:
    assert MemoryAnalysis.model_validate({"targetFile": "USER.md"}).target_file == "USER.md"
    assert MemoryAnalysis.model_validate({"targetFile": "../etc/passwd"}).target_file == "MEMORY.md"
    assert MemoryAnalysis.model_validate({"targetFile": "notes.txt"}).target_file == "MEMORY.md"
    assert MemoryAnalysis.model_validate({"targetFile": None}).target_file == "MEMORY.md"


def test_analysis_coerces_list_content() -> None:
    analysis = MemoryAnalysis.from_response('{"extractedContent": ["a", "b"], "shouldUpdate": true}')
    assert analysis.extracted_content == "a; b"
    assert analysis.should_update is True


def test_decision_type_mismatch_is_a_decode_failure() -> None:
    with pytest.raises(DecodeFailure):
        UpdateDecision.from_response('{"needsUpdate": {"nested": true}}')


def test_decision_defaults() -> None:
    decision = UpdateDecision.from_response("{}")
    assert decision.needs_update is False
    assert decision.update_scope is UpdateScope.NONE
    assert decision.line_updates == []


def test_single_directive_object_is_wrapped() -> None:
    decision = UpdateDecision.from_response('{"lineUpdates": {"lineNumber": 1, "content": "x"}}')
    assert decision.line_updates == [{"lineNumber": 1, "content": "x"}]
