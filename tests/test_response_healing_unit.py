from __future__ import annotations

import json

from src.application.services.content_generation.response_healing import (
    Completeness,
    close_truncated_json,
    escape_newlines_in_strings,
    heal_json,
    remove_trailing_commas,
    validate_response_completeness,
)


def test_direct_parse():
    r = heal_json('{"title": "T", "html_content": "<p>x</p>"}')
    assert r.success is True
    assert r.strategy == "direct"
    assert r.is_truncated is False
    assert r.data["title"] == "T"


def test_fenced_block():
    raw = 'Here you go:\n```json\n{"html_content": "<p>a</p>"}\n```\n'
    r = heal_json(raw)
    assert r.success is True
    assert r.strategy == "fenced_block"
    assert r.data == {"html_content": "<p>a</p>"}


def test_boundary_slice_ignores_surrounding_prose():
    raw = 'Sure! {"html_content": "<p>a</p>", "title": "x"} Hope this helps.'
    r = heal_json(raw)
    assert r.success is True
    assert r.strategy == "boundary"


def test_syntax_repair_trailing_comma_and_raw_newline():
    raw = '{"title": "T", "html_content": "<p>line one\nline two</p>",}'
    r = heal_json(raw)
    assert r.success is True
    assert r.strategy == "syntax_repair"
    assert r.data["html_content"] == "<p>line one\nline two</p>"


def test_truncated_nested_structure_is_closed_in_order():
    raw = '{"title":"T","html_content":"<p>x</p>","faqs":[{"question":"Q?","answer":"A."'
    r = heal_json(raw)
    assert r.success is True
    assert r.strategy == "close_truncated"
    assert r.is_truncated is True
    assert r.data["faqs"] == [{"question": "Q?", "answer": "A."}]


def test_truncated_inside_string_is_closed():
    raw = '{"title": "T", "html_content": "<p>Long text that was cut'
    r = heal_json(raw)
    assert r.success is True
    assert r.is_truncated is True
    assert r.data["html_content"] == "<p>Long text that was cut"


def test_field_extraction_as_last_resort():
    raw = '{"title": "Guide", "html_content": "<p>body \\"quoted\\"</p>", "faqs": [ {question: broken} ]}'
    r = heal_json(raw)
    assert r.success is True
    assert r.strategy == "field_extraction"
    assert r.is_truncated is True
    assert r.data["title"] == "Guide"
    assert r.data["html_content"] == '<p>body "quoted"</p>'
    assert r.data["faqs"] == []


def test_field_extraction_not_used_for_outline_shapes():
    raw = '{"title": "Guide", "html_content": "<p>x</p>", "sections": [ {heading: broken} ]}'
    r = heal_json(raw, required_fields=("sections",))
    assert r.success is False


def test_required_fields_must_be_present():
    r = heal_json('{"title": "only a title"}')
    assert r.success is False


def test_failure_carries_preview():
    raw = "I'm sorry, I can't produce JSON today. " * 10
    r = heal_json(raw)
    assert r.success is False
    assert r.error.startswith("JSON parse failed. Preview: I'm sorry")
    assert len(r.error) < len(raw)


def test_empty_input():
    r = heal_json("   ")
    assert r.success is False
    assert r.error == "empty response text"


def test_outline_shape_parses_with_sections_requirement():
    outline = {"title": "T", "sections": [{"heading": f"H{i}", "key_points": ["a"]} for i in range(6)]}
    r = heal_json("```json\n" + json.dumps(outline) + "\n```", required_fields=("sections",))
    assert r.success is True
    assert len(r.data["sections"]) == 6


def test_completeness_verdicts():
    assert validate_response_completeness("").verdict is Completeness.EMPTY
    assert validate_response_completeness('{"html_content": "x"').verdict is Completeness.TRUNCATED_STRUCTURE
    assert validate_response_completeness('{"html_content": "x"}').verdict is Completeness.TRUNCATED_CONTENT
    full = '{"html_content": "x", "title": "t", "meta_description": "m"}'
    report = validate_response_completeness(full)
    assert report.is_complete is True
    assert report.is_truncated is False
    assert validate_response_completeness(full + "}").verdict is Completeness.TRUNCATED_STRUCTURE
    assert validate_response_completeness(full + "]}").verdict is Completeness.TRUNCATED_STRUCTURE


def test_helpers():
    assert remove_trailing_commas('{"a": [1, 2,], }') == '{"a": [1, 2] }'
    assert escape_newlines_in_strings('{"a": "x\ny"}\n') == '{"a": "x\\ny"}\n'
    assert close_truncated_json('{"a": [1, {"b": "c') == '{"a": [1, {"b": "c"}]}'
    assert close_truncated_json('{"a": 1,') == '{"a": 1}'
    assert close_truncated_json('{"a":') == '{"a":null}'


def test_syntax_repair_keeps_commas_inside_strings():
    r = heal_json('{"title": "x", "html_content": "<p>a, ]b, }c</p>",}')
    assert r.success is True
    assert r.strategy == "syntax_repair"
    assert r.data["html_content"] == "<p>a, ]b, }c</p>"
    assert remove_trailing_commas('{"a": "1, ]", "b": [2, ],}') == '{"a": "1, ]", "b": [2 ]}'
