from __future__ import annotations

import json
from typing import Sequence

from .config import PromptsConfig
from .models import ChatTurn, ResolvedFilters
from .schema_types import SchemaSummary

SYSTEM_PROMPT = """\
You are a senior data analyst for a PostgreSQL database.

OUTPUT FORMAT (STRICT):
Return ONLY valid JSON. No markdown. No extra text.

Allowed JSON shapes:

1) Answer:
{
  "type": "answer",
  "sql": "SELECT ...",
  "answer": "1-2 line business explanation",
  "insights": ["..."],
  "followups": ["..."],
  "visualization": {"type": "line|bar|table", "xKey": "...", "yKey": "..."}
}
insights, followups and visualization are optional.

2) Clarify (only if truly impossible to answer):
{
  "type": "clarify",
  "clarifying_question": "...",
  "options": ["..."]
}

SQL RULES:
- SINGLE statement only
- ONLY SELECT / WITH
- Use ONLY the provided schema tables/columns
- Prefer aggregation; avoid huge raw dumps
- Always include LIMIT <= 200 unless aggregating small results
- Never use SELECT *"""

USER_PROMPT_TEMPLATE = """\
SCHEMA (PostgreSQL):
{schema}

RESOLVED:
{resolved}

HISTORY (last turns):
{history}

QUESTION:
{question}

Return JSON only."""

REPAIR_PROMPT_TEMPLATE = """\
Your previous output could not be parsed/validated.

Convert it into EXACTLY one of these JSON shapes (and output JSON only):

Answer:
{{"type":"answer","sql":"SELECT ...","answer":"...","insights":["..."],"followups":["..."],"visualization":{{"type":"line|bar|table","xKey":"...","yKey":"..."}}}}

Clarify:
{{"type":"clarify","clarifying_question":"...","options":["..."]}}

BAD_OUTPUT (clipped):
{bad_output}"""


def _compact_json(value) -> str:
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False)


class PromptBuilder:
    def __init__(self, cfg: PromptsConfig):
        self._cfg = cfg

    def system_prompt(self) -> str:
        return SYSTEM_PROMPT

    def schema_text(self, schema: SchemaSummary) -> str:
        lines = []
        for table in schema.tables:
            cols = ", ".join(
                f"{col.name}:{col.type}" for col in table.columns[: self._cfg.max_columns_per_table]
            )
            lines.append(f"{table.name}({cols})")
        return "\n".join(lines)

    def user_prompt(
        self,
        schema: SchemaSummary,
        resolved: ResolvedFilters,
        history: Sequence[ChatTurn],
        question: str,
    ) -> str:
        turns = list(history)[-self._cfg.history_turns:] if self._cfg.history_turns else []
        return USER_PROMPT_TEMPLATE.format(
            schema=self.schema_text(schema),
            resolved=_compact_json(resolved.model_dump()),
            history=_compact_json([turn.model_dump() for turn in turns]),
            question=question,
        )

    def repair_prompt(self, bad_output: str) -> str:
        clipped = (bad_output or "")[: self._cfg.repair_clip_chars]
        return REPAIR_PROMPT_TEMPLATE.format(bad_output=clipped)


__all__ = ["PromptBuilder", "SYSTEM_PROMPT"]
