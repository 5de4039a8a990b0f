from __future__ import annotations

import abc
from typing import Optional, Union

from .errors import ChatError
from .models import (
    AnswerOutput,
    AnswerResponse,
    ClarifyOutput,
    ClarifyResponse,
    ErrorResponse,
    ModelOutput,
    QueryResult,
    Visualization,
)
from .sql_guard import ValidatedSql


class QueryRunner(abc.ABC):
    @abc.abstractmethod
    async def run(self, sql: ValidatedSql) -> QueryResult:
        raise NotImplementedError


class ResponseAssembler:
    """Builds the caller-facing envelope. Only guarded SQL ever reaches it."""

    def __init__(self, runner: QueryRunner):
        self._runner = runner

    async def assemble(
        self,
        output: ModelOutput,
        validated_sql: Optional[ValidatedSql] = None,
    ) -> Union[AnswerResponse, ClarifyResponse]:
        if isinstance(output, ClarifyOutput):
            return ClarifyResponse(
                clarifying_question=output.clarifying_question,
                options=list(output.options),
            )
        if isinstance(output, AnswerOutput):
            if not isinstance(validated_sql, ValidatedSql):
                raise TypeError("answer responses require ValidatedSql")
            result = await self._runner.run(validated_sql)
            return AnswerResponse(
                sql=str(validated_sql),
                answer=output.answer,
                insights=list(output.insights),
                followups=list(output.followups),
                visualization=output.visualization or Visualization(type="table"),
                result=result,
            )
        raise TypeError(f"unexpected model output {type(output).__name__}")

    @staticmethod
    def failure(exc: ChatError) -> ErrorResponse:
        return ErrorResponse(error=exc.public_message)


__all__ = ["ResponseAssembler", "QueryRunner"]
