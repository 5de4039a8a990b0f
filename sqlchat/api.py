from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from .assembler import ResponseAssembler
from .audit import AuditLogger
from .cache import CacheClient
from .config import Settings, get_settings
from .db import Database
from .errors import ChatError
from .executor import QueryExecutor
from .llm_client import LanguageModelGateway, build_gateway
from .logging_utils import configure_logging, get_logger
from .model_invoker import ModelInvoker
from .models import ChatRequest, ErrorResponse, to_envelope
from .observability import init_metrics_server
from .pipeline import ChatPipeline
from .prompts import PromptBuilder
from .rate_limiter import RateLimiter
from .schema_cache import SchemaCache
from .schema_extractor import PostgresSchemaProvider
from .schema_shortlister import SchemaShortlister
from .sql_guard import SqlGuard

logger = get_logger(__name__)


@dataclass
class Resources:
    db: Database
    shared_cache: Optional[CacheClient]
    gateway: LanguageModelGateway
    pipeline: ChatPipeline


def build_resources(settings: Settings) -> Resources:
    db = Database(settings.postgres)
    shared_cache = CacheClient(settings.redis) if settings.redis else None
    provider = PostgresSchemaProvider(db, settings.introspection)
    schema_cache = SchemaCache(
        provider,
        ttl_seconds=settings.introspection.cache_ttl_s,
        shared=shared_cache,
    )
    prompts = PromptBuilder(settings.prompts)
    gateway = build_gateway(settings.llm, os.environ.get("LLM_API_KEY", ""))
    pipeline = ChatPipeline(
        schema_cache,
        SchemaShortlister(settings.introspection),
        prompts,
        ModelInvoker(gateway, prompts),
        SqlGuard(settings.sql_guard),
        ResponseAssembler(QueryExecutor(db, settings.postgres)),
        AuditLogger(settings.observability),
        RateLimiter(settings.security),
    )
    return Resources(db=db, shared_cache=shared_cache, gateway=gateway, pipeline=pipeline)


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=ErrorResponse(error=message).model_dump())


def create_app(settings: Settings | None = None, pipeline: ChatPipeline | None = None) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(settings.app.log_level, settings.app.log_format)

    app = FastAPI(title="sqlchat", version="0.1.0")

    resources: Optional[Resources] = None
    if pipeline is None:
        resources = build_resources(settings)
        pipeline = resources.pipeline
    chat_pipeline = pipeline

    @app.on_event("startup")
    async def _startup() -> None:
        init_metrics_server(settings.observability)
        if resources is not None:
            await resources.db.connect()
            if resources.shared_cache is not None:
                await resources.shared_cache.connect()
        logger.info("app_started", environment=settings.environment)

    @app.on_event("shutdown")
    async def _shutdown() -> None:
        if resources is not None:
            await resources.db.close()
            if resources.shared_cache is not None:
                await resources.shared_cache.close()
            await resources.gateway.aclose()
        logger.info("app_shutdown")

    @app.exception_handler(RequestValidationError)
    async def _invalid_request(request: Request, exc: RequestValidationError) -> JSONResponse:
        first = exc.errors()[0] if exc.errors() else {}
        location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = first.get("msg", "invalid request")
        return _error(422, f"Invalid request: {location}: {message}" if location else f"Invalid request: {message}")

    @app.get("/healthz")
    async def healthz() -> dict:
        return {"ok": True}

    @app.get("/api/connect")
    async def connect() -> JSONResponse:
        try:
            schema = await chat_pipeline.describe_schema()
        except ChatError as exc:
            return _error(exc.http_status, exc.public_message)
        return JSONResponse(content={
            "ok": True,
            "tableCount": len(schema.tables),
            "schemaSummary": schema.to_dict(),
        })

    @app.post("/api/chat")
    async def chat(body: ChatRequest, request: Request) -> JSONResponse:
        client_key = request.client.host if request.client else "anonymous"
        try:
            response = await chat_pipeline.run(body, client_key)
        except ChatError as exc:
            return _error(exc.http_status, exc.public_message)
        except Exception as exc:  # noqa: BLE001
            logger.exception("chat_unhandled", error=str(exc))
            return _error(500, "Internal error")
        return JSONResponse(content=to_envelope(response))

    return app


__all__ = ["create_app", "build_resources", "Resources"]
