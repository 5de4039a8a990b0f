from __future__ import annotations

import re
from typing import List, Optional, Set

from .config import IntrospectionConfig
from .schema_types import SchemaSummary, Table

_TOKEN_RE = re.compile(r"[a-z0-9_]+")
_MIN_TOKEN_LENGTH = 3
_TABLE_MATCH_SCORE = 5
_COLUMN_MATCH_SCORE = 1


def tokenize(question: str) -> Set[str]:
    return {tok for tok in _TOKEN_RE.findall(question.lower()) if len(tok) >= _MIN_TOKEN_LENGTH}


def score_table(table: Table, tokens: Set[str]) -> int:
    table_name = table.name.lower()
    columns = [col.name.lower() for col in table.columns]
    score = 0
    for tok in tokens:
        if tok in table_name:
            score += _TABLE_MATCH_SCORE
        score += _COLUMN_MATCH_SCORE * sum(1 for col in columns if tok in col)
    return score


class SchemaShortlister:
    """Keeps the tables whose names and columns overlap the question."""

    def __init__(self, cfg: IntrospectionConfig):
        self._cfg = cfg

    def shortlist(self, schema: SchemaSummary, question: str, max_tables: Optional[int] = None) -> SchemaSummary:
        limit = max(1, max_tables or self._cfg.max_tables)
        tokens = tokenize(question)
        scored = [(table, score_table(table, tokens)) for table in schema.tables]
        if not any(score for _, score in scored):
            return SchemaSummary(tables=schema.tables[:limit])
        # sorted() is stable, so ties keep schema order
        ranked = sorted(scored, key=lambda item: item[1], reverse=True)
        return SchemaSummary(tables=tuple(table for table, _ in ranked[:limit]))


def shortlist_tables(schema: SchemaSummary, question: str, max_tables: int = 8) -> List[str]:
    shortlister = SchemaShortlister(IntrospectionConfig(max_tables=max(1, max_tables)))
    return [table.name for table in shortlister.shortlist(schema, question).tables]


__all__ = ["SchemaShortlister", "shortlist_tables", "score_table", "tokenize"]
