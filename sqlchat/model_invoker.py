from __future__ import annotations

from typing import Optional

from .errors import ModelOutputInvalid, ModelValidationError
from .llm_client import LanguageModelGateway, as_messages
from .logging_utils import get_logger
from .models import ModelOutput
from .observability import MODEL_REPAIRS
from .output_validator import OutputValidator
from .prompts import PromptBuilder

logger = get_logger(__name__)

# first attempt + exactly one repair
MAX_ATTEMPTS = 2


class ModelInvoker:
    """Calls the gateway and re-prompts once when the output does not validate."""

    def __init__(self, gateway: LanguageModelGateway, prompts: PromptBuilder, validator: Optional[OutputValidator] = None):
        self._gateway = gateway
        self._prompts = prompts
        self._validator = validator or OutputValidator()

    async def invoke(self, system_prompt: str, user_prompt: str) -> ModelOutput:
        raw = await self._gateway.complete(as_messages(system_prompt, user_prompt))
        first_raw = raw
        last_error: Optional[ModelValidationError] = None
        for attempt in range(1, MAX_ATTEMPTS + 1):
            try:
                output = self._validator.validate(raw)
            except ModelValidationError as exc:
                last_error = exc
                logger.warning("model_output_invalid", attempt=attempt, error=str(exc))
            else:
                logger.info("model_output_valid", attempt=attempt, kind=output.kind)
                return output
            if attempt == MAX_ATTEMPTS:
                break
            MODEL_REPAIRS.inc()
            repair = self._prompts.repair_prompt(first_raw)
            raw = await self._gateway.complete(as_messages(system_prompt, repair))
        raise ModelOutputInvalid(f"model output invalid after repair: {last_error}")


__all__ = ["ModelInvoker", "MAX_ATTEMPTS"]
