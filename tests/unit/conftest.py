from __future__ import annotations

from typing import Callable, List, Optional, Sequence, Union

import pytest

from sqlchat.assembler import QueryRunner, ResponseAssembler
from sqlchat.audit import AuditLogger
from sqlchat.config import IntrospectionConfig, ObservabilityConfig, PromptsConfig, SQLGuardConfig
from sqlchat.errors import ChatError
from sqlchat.llm_client import LanguageModelGateway, Message
from sqlchat.model_invoker import ModelInvoker
from sqlchat.models import QueryResult
from sqlchat.pipeline import ChatPipeline
from sqlchat.prompts import PromptBuilder
from sqlchat.rate_limiter import RateLimiter
from sqlchat.schema_cache import SchemaCache, SchemaProvider
from sqlchat.schema_shortlister import SchemaShortlister
from sqlchat.schema_types import Column, SchemaSummary, Table
from sqlchat.sql_guard import SqlGuard, ValidatedSql


class ScriptedGateway(LanguageModelGateway):
    def __init__(self, replies: Sequence[Union[str, Exception]]):
        self._replies = list(replies)
        self.calls: List[List[Message]] = []

    async def complete(self, messages: Sequence[Message]) -> str:
        self.calls.append(list(messages))
        reply = self._replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply


class StaticProvider(SchemaProvider):
    def __init__(self, schema: SchemaSummary, error: Optional[ChatError] = None):
        self._schema = schema
        self._error = error

    async def get_schema(self) -> SchemaSummary:
        if self._error is not None:
            raise self._error
        return self._schema


class RecordingRunner(QueryRunner):
    def __init__(self, result: Optional[QueryResult] = None, error: Optional[ChatError] = None):
        self.statements: List[ValidatedSql] = []
        self._result = result or QueryResult(
            rows=[{"name": "Ada", "revenue": 1200}, {"name": "Lin", "revenue": 900}],
            fields=["name", "revenue"],
        )
        self._error = error

    async def run(self, sql: ValidatedSql) -> QueryResult:
        self.statements.append(sql)
        if self._error is not None:
            raise self._error
        return self._result


@pytest.fixture
def scripted_gateway() -> Callable[..., ScriptedGateway]:
    return ScriptedGateway


@pytest.fixture
def sales_schema() -> SchemaSummary:
    return SchemaSummary(tables=(
        Table(name="products", columns=(Column("id", "integer"), Column("sku", "text"))),
        Table(name="reps", columns=(Column("id", "integer"), Column("name", "text"))),
        Table(name="deals", columns=(
            Column("id", "integer"),
            Column("rep_id", "integer"),
            Column("amount", "numeric"),
        )),
    ))


@pytest.fixture
def make_pipeline(tmp_path, sales_schema):
    def _make(
        replies: Sequence[Union[str, Exception]],
        runner: Optional[RecordingRunner] = None,
        provider: Optional[SchemaProvider] = None,
        rate_limiter: Optional[RateLimiter] = None,
    ):
        gateway = ScriptedGateway(replies)
        runner = runner or RecordingRunner()
        prompts = PromptBuilder(PromptsConfig())
        pipeline = ChatPipeline(
            SchemaCache(provider or StaticProvider(sales_schema), ttl_seconds=60),
            SchemaShortlister(IntrospectionConfig()),
            prompts,
            ModelInvoker(gateway, prompts),
            SqlGuard(SQLGuardConfig()),
            ResponseAssembler(runner),
            AuditLogger(ObservabilityConfig(audit_log_path=str(tmp_path / "audit.log"))),
            rate_limiter,
        )
        return pipeline, gateway, runner

    return _make


@pytest.fixture
def static_provider() -> Callable[..., StaticProvider]:
    return StaticProvider


@pytest.fixture
def recording_runner() -> Callable[..., RecordingRunner]:
    return RecordingRunner
