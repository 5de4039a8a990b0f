from __future__ import annotations

import pytest

from sqlchat.errors import ParseError, SchemaMismatchError
from sqlchat.models import AnswerOutput, ClarifyOutput
from sqlchat.output_validator import OutputValidator, parse_json_object


@pytest.fixture
def validator() -> OutputValidator:
    return OutputValidator()


def test_final_alias_is_answer(validator: OutputValidator) -> None:
    output = validator.validate('{"type":"FINAL", "sql":"select 1","answer":"ok"}')
    assert isinstance(output, AnswerOutput)
    assert output.sql == "select 1"
    assert output.insights == []
    assert output.followups == []
    assert output.visualization is None


@pytest.mark.parametrize("tag", [" Answer ", "result", "ANSWER"])
def test_type_tag_is_normalized(validator: OutputValidator, tag: str) -> None:
    raw = '{"type": "%s", "sql": "select 1", "answer": "ok"}' % tag
    assert isinstance(validator.validate(raw), AnswerOutput)


def test_clarify_with_surrounding_prose(validator: OutputValidator) -> None:
    raw = 'Sure! Here you go:\n{"type": "clarify", "clarifying_question": "Which year?"}\nHope that helps.'
    output = validator.validate(raw)
    assert isinstance(output, ClarifyOutput)
    assert output.clarifying_question == "Which year?"
    assert output.options == []


def test_answer_fields_are_kept(validator: OutputValidator) -> None:
    raw = """
    {"type": "answer", "sql": "select rep_id from deals", "answer": "Reps",
     "insights": ["a"], "followups": ["b", "c"],
     "visualization": {"type": "bar", "xKey": "rep_id", "yKey": "revenue"}}
    """
    output = validator.validate(raw)
    assert isinstance(output, AnswerOutput)
    assert output.insights == ["a"]
    assert output.followups == ["b", "c"]
    assert output.visualization is not None
    assert output.visualization.type == "bar"
    assert output.visualization.x_key == "rep_id"
    assert output.visualization.y_key == "revenue"


def test_visualization_type_defaults_to_table(validator: OutputValidator) -> None:
    raw = '{"type": "answer", "sql": "select 1", "answer": "ok", "visualization": {"xKey": "day"}}'
    output = validator.validate(raw)
    assert output.visualization is not None
    assert output.visualization.type == "table"
    assert output.visualization.x_key == "day"


def test_null_optional_fields_are_absent(validator: OutputValidator) -> None:
    raw = '{"type": "answer", "sql": "select 1", "answer": "ok", "insights": null, "visualization": null}'
    output = validator.validate(raw)
    assert output.insights == []
    assert output.visualization is None


@pytest.mark.parametrize("raw", ["", "   ", "no json here", "{not json}", "[1, 2]", "} {"])
def test_unparsable_input(validator: OutputValidator, raw: str) -> None:
    with pytest.raises(ParseError, match="empty or unparsable response"):
        validator.validate(raw)


@pytest.mark.parametrize(
    "raw",
    [
        '{"type": "answer", "sql": "", "answer": "ok"}',
        '{"type": "answer", "sql": "select 1", "answer": "   "}',
        '{"type": "answer", "answer": "ok"}',
        '{"type": "answer", "sql": "select 1", "answer": "ok", "insights": [1]}',
        '{"type": "answer", "sql": "select 1", "answer": "ok", "visualization": {"type": "pie"}}',
        '{"type": "clarify", "options": ["a"]}',
        '{"type": "chart", "sql": "select 1", "answer": "ok"}',
        '{"sql": "select 1", "answer": "ok"}',
        '{"type": 1, "sql": "select 1", "answer": "ok"}',
    ],
)
def test_shape_mismatch(validator: OutputValidator, raw: str) -> None:
    with pytest.raises(SchemaMismatchError):
        validator.validate(raw)


def test_parse_prefers_whole_object() -> None:
    assert parse_json_object('  {"a": {"b": 1}}  ') == {"a": {"b": 1}}
