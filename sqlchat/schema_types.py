from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Tuple


@dataclass(frozen=True)
class Column:
    name: str
    type: str


@dataclass(frozen=True)
class Table:
    name: str
    columns: Tuple[Column, ...] = ()


@dataclass(frozen=True)
class SchemaSummary:
    """Immutable table/column listing. Shared between concurrent requests."""

    tables: Tuple[Table, ...] = field(default_factory=tuple)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tables": [
                {
                    "name": table.name,
                    "columns": [{"name": col.name, "type": col.type} for col in table.columns],
                }
                for table in self.tables
            ]
        }

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "SchemaSummary":
        tables = []
        for table in payload.get("tables", []):
            columns = tuple(
                Column(name=str(col["name"]), type=str(col.get("type", "")))
                for col in table.get("columns", [])
            )
            tables.append(Table(name=str(table["name"]), columns=columns))
        return cls(tables=tuple(tables))


__all__ = ["Column", "Table", "SchemaSummary"]
