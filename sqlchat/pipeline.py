from __future__ import annotations

import uuid
from typing import Any, Dict, Optional, Union

from .assembler import ResponseAssembler
from .audit import AuditLogger
from .errors import ChatError, SqlRejected
from .logging_utils import bind_request, get_logger
from .model_invoker import ModelInvoker
from .models import AnswerResponse, ChatRequest, ChatResponse, ClarifyOutput, ClarifyResponse
from .observability import GUARD_REJECTIONS, REQUEST_COUNTER, record_latency
from .prompts import PromptBuilder
from .rate_limiter import RateLimiter
from .schema_cache import SchemaCache
from .schema_shortlister import SchemaShortlister
from .schema_types import SchemaSummary
from .sql_guard import SqlGuard

logger = get_logger(__name__)


class ChatPipeline:
    def __init__(
        self,
        schema_cache: SchemaCache,
        shortlister: SchemaShortlister,
        prompts: PromptBuilder,
        invoker: ModelInvoker,
        guard: SqlGuard,
        assembler: ResponseAssembler,
        audit_logger: AuditLogger,
        rate_limiter: Optional[RateLimiter] = None,
    ):
        self._schema_cache = schema_cache
        self._shortlister = shortlister
        self._prompts = prompts
        self._invoker = invoker
        self._guard = guard
        self._assembler = assembler
        self._audit = audit_logger
        self._rate_limiter = rate_limiter

    async def handle(self, request: ChatRequest, client_key: str = "anonymous") -> ChatResponse:
        """Run the pipeline and collapse any request-scoped failure into an error envelope."""
        try:
            return await self.run(request, client_key)
        except ChatError as exc:
            return self._assembler.failure(exc)

    async def run(
        self,
        request: ChatRequest,
        client_key: str = "anonymous",
    ) -> Union[AnswerResponse, ClarifyResponse]:
        bind_request(uuid.uuid4().hex[:12])
        audit: Dict[str, Any] = {"client": client_key, "question": request.message}
        try:
            if self._rate_limiter is not None:
                await self._rate_limiter.check(client_key)
            response = await self._run(request, audit)
        except ChatError as exc:
            REQUEST_COUNTER.labels(outcome="error").inc()
            audit.update(outcome="error", error=type(exc).__name__)
            if isinstance(exc, SqlRejected):
                audit["reason"] = exc.reason.value
            logger.warning("chat_failed", error_type=type(exc).__name__, error=str(exc))
            self._audit.write(audit)
            raise
        REQUEST_COUNTER.labels(outcome=response.type).inc()
        audit["outcome"] = response.type
        self._audit.write(audit)
        return response

    async def describe_schema(self) -> SchemaSummary:
        return await self._schema_cache.get()

    async def _run(self, request: ChatRequest, audit: Dict[str, Any]) -> Union[AnswerResponse, ClarifyResponse]:
        with record_latency("total"):
            with record_latency("schema"):
                schema = await self._schema_cache.get()
            shortlisted = self._shortlister.shortlist(schema, request.message)
            logger.info(
                "schema_shortlisted",
                tables=[table.name for table in shortlisted.tables],
                total=len(schema.tables),
            )
            system_prompt = self._prompts.system_prompt()
            user_prompt = self._prompts.user_prompt(
                shortlisted,
                request.resolved,
                request.history,
                request.message,
            )
            with record_latency("model"):
                output = await self._invoker.invoke(system_prompt, user_prompt)

            if isinstance(output, ClarifyOutput):
                return await self._assembler.assemble(output)

            with record_latency("guard"):
                try:
                    validated = self._guard.guard(output.sql)
                except SqlRejected as exc:
                    GUARD_REJECTIONS.labels(reason=exc.reason.value).inc()
                    audit["candidate_sql"] = output.sql
                    raise
            audit["sql"] = str(validated)
            with record_latency("execution"):
                return await self._assembler.assemble(output, validated)


__all__ = ["ChatPipeline"]
