from __future__ import annotations

import json
from typing import Any, Dict, Optional

from jsonschema import Draft7Validator

from .errors import ParseError, SchemaMismatchError
from .models import AnswerOutput, ClarifyOutput, ModelOutput, Visualization

_TYPE_ALIASES = {"final": "answer", "result": "answer"}

_NON_EMPTY_STRING = {"type": "string", "minLength": 1, "pattern": r"\S"}
_OPTIONAL_STRING_LIST = {"type": ["array", "null"], "items": {"type": "string"}}

ANSWER_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "required": ["sql", "answer"],
    "properties": {
        "sql": _NON_EMPTY_STRING,
        "answer": _NON_EMPTY_STRING,
        "insights": _OPTIONAL_STRING_LIST,
        "followups": _OPTIONAL_STRING_LIST,
        "visualization": {
            "type": ["object", "null"],
            "properties": {
                "type": {"enum": ["line", "bar", "table", None]},
                "xKey": {"type": ["string", "null"]},
                "yKey": {"type": ["string", "null"]},
            },
        },
    },
}

CLARIFY_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "required": ["clarifying_question"],
    "properties": {
        "clarifying_question": _NON_EMPTY_STRING,
        "options": _OPTIONAL_STRING_LIST,
    },
}

_ANSWER_VALIDATOR = Draft7Validator(ANSWER_SCHEMA)
_CLARIFY_VALIDATOR = Draft7Validator(CLARIFY_SCHEMA)


def normalize_type(value: Any) -> Optional[str]:
    if not isinstance(value, str):
        return None
    tag = value.strip().lower()
    return _TYPE_ALIASES.get(tag, tag)


def parse_json_object(raw: str) -> Dict[str, Any]:
    """Parse model text into a JSON object, tolerating prose around it."""
    text = (raw or "").strip()
    if text:
        try:
            parsed = json.loads(text)
        except json.JSONDecodeError:
            parsed = None
        if isinstance(parsed, dict):
            return parsed
        start = text.find("{")
        end = text.rfind("}")
        if start != -1 and end > start:
            try:
                parsed = json.loads(text[start : end + 1])
            except json.JSONDecodeError:
                parsed = None
            if isinstance(parsed, dict):
                return parsed
    raise ParseError("empty or unparsable response")


class OutputValidator:
    def validate(self, raw: str) -> ModelOutput:
        payload = parse_json_object(raw)
        tag = normalize_type(payload.get("type"))
        if tag == "answer":
            self._check(_ANSWER_VALIDATOR, payload, "answer")
            return self._build_answer(payload)
        if tag == "clarify":
            self._check(_CLARIFY_VALIDATOR, payload, "clarify")
            return ClarifyOutput(
                clarifying_question=payload["clarifying_question"],
                options=payload.get("options") or [],
            )
        raise SchemaMismatchError(f"unknown response type {payload.get('type')!r}")

    def _check(self, validator: Draft7Validator, payload: Dict[str, Any], shape: str) -> None:
        errors = sorted(validator.iter_errors(payload), key=lambda err: [str(part) for part in err.path])
        if errors:
            details = "; ".join(err.message for err in errors)
            raise SchemaMismatchError(f"{shape} shape mismatch: {details}")

    def _build_answer(self, payload: Dict[str, Any]) -> AnswerOutput:
        visualization = None
        raw_vis = payload.get("visualization")
        if raw_vis is not None:
            visualization = Visualization(
                type=raw_vis.get("type") or "table",
                xKey=raw_vis.get("xKey"),
                yKey=raw_vis.get("yKey"),
            )
        return AnswerOutput(
            sql=payload["sql"],
            answer=payload["answer"],
            insights=payload.get("insights") or [],
            followups=payload.get("followups") or [],
            visualization=visualization,
        )


def validate_model_output(raw: str) -> ModelOutput:
    return OutputValidator().validate(raw)


__all__ = [
    "OutputValidator",
    "validate_model_output",
    "parse_json_object",
    "normalize_type",
    "ANSWER_SCHEMA",
    "CLARIFY_SCHEMA",
]
