from __future__ import annotations

from sqlchat.config import IntrospectionConfig, PostgresConfig
from sqlchat.db import Database
from sqlchat.schema_extractor import PostgresSchemaProvider
from sqlchat.schema_types import Column, SchemaSummary, Table


def _row(schema: str, table: str, column: str, data_type: str) -> dict:
    return {"schema_name": schema, "table_name": table, "column_name": column, "data_type": data_type}


def test_collect_groups_columns_and_qualifies_non_public_tables() -> None:
    provider = PostgresSchemaProvider(
        Database(PostgresConfig(dsn="postgresql://placeholder")),
        IntrospectionConfig(schemas=["public", "sales"]),
    )
    rows = [
        _row("public", "reps", "id", "integer"),
        _row("public", "reps", "name", "text"),
        _row("sales", "deals", "id", "integer"),
        _row("sales", "deals", "amount", "numeric"),
    ]
    assert provider._collect(rows) == SchemaSummary(tables=(
        Table(name="reps", columns=(Column("id", "integer"), Column("name", "text"))),
        Table(name="sales.deals", columns=(Column("id", "integer"), Column("amount", "numeric"))),
    ))


def test_collect_without_rows_is_empty() -> None:
    provider = PostgresSchemaProvider(
        Database(PostgresConfig(dsn="postgresql://placeholder")),
        IntrospectionConfig(),
    )
    assert provider._collect([]) == SchemaSummary()
