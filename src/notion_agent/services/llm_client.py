"""LLM client for JSON-mode chat completions."""

import asyncio
import json
from typing import Any, Optional

import httpx

from notion_agent.models.config import LLMConfig
from notion_agent.services.exceptions import (
    LLMResponseError,
    TransientExternalError,
    raise_for_status,
)
from notion_agent.utils.logging import get_logger


logger = get_logger(__name__)


def _extract_message_content(data: dict[str, Any]) -> str:
    """
    Pull the assistant message out of an OpenAI-style completion.

    OpenAI-compatible APIs return:
    {
        "choices": [{
            "message": {"role": "assistant", "content": "..."}
        }]
    }

    Raises:
        LLMResponseError: If the completion has no message content
    """
    try:
        content = data["choices"][0]["message"]["content"]
    except (KeyError, IndexError, TypeError) as e:
        raise LLMResponseError(f"Completion has no message content: {e}") from e
    if not isinstance(content, str) or not content.strip():
        raise LLMResponseError("Completion message content is empty")
    return content


class LLMClient:
    """
    HTTP client for an OpenAI-compatible chat completions API.

    Only JSON mode is used: every call asks for `response_format=json_object`
    and returns the parsed object. Retries are the caller's concern.
    """

    def __init__(
        self,
        config: LLMConfig,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize LLM client.

        Args:
            config: LLM configuration (endpoint, API key, model)
            timeout: Read timeout in seconds
            transport: Optional httpx transport (used by tests)
        """
        self.config = config
        self.timeout = httpx.Timeout(
            connect=10.0,
            read=timeout,
            write=10.0,
            pool=10.0
        )
        self._transport = transport

    @property
    def completions_url(self) -> str:
        return f"{str(self.config.endpoint).rstrip('/')}/chat/completions"

    async def complete_json(
        self,
        system_prompt: str,
        user_prompt: str,
        request_id: Optional[str] = None,
    ) -> dict[str, Any]:
        """
        Run one JSON-mode completion.

        Args:
            system_prompt: Fixed instructions for the model
            user_prompt: The user's text
            request_id: Optional identifier for log correlation

        Returns:
            The JSON object the model produced

        Raises:
            TransientExternalError: On timeouts, network errors, 429 or 5xx
            PermanentExternalError: On auth or validation failures
            LLMResponseError: If the reply is not a JSON object
        """
        if not request_id:
            current_task = asyncio.current_task()
            request_id = current_task.get_name() if current_task else "llm"

        payload = {
            "model": self.config.model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            "temperature": self.config.temperature,
            "response_format": {"type": "json_object"},
        }
        headers = {
            "Authorization": f"Bearer {self.config.api_key}",
            "Content-Type": "application/json",
        }

        logger.info(
            "llm_request_started",
            request_id=request_id,
            model=self.config.model,
            endpoint=self.completions_url,
        )
        logger.debug("llm_request_payload", request_id=request_id, user_prompt=user_prompt)

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(self.completions_url, json=payload, headers=headers)
        except httpx.TimeoutException as e:
            logger.warning("llm_request_timeout", request_id=request_id, error=str(e))
            raise TransientExternalError("llm", f"timeout: {e}") from e
        except httpx.HTTPError as e:
            logger.warning("llm_request_network_error", request_id=request_id, error=str(e))
            raise TransientExternalError("llm", str(e)) from e

        raise_for_status(response, "llm")

        try:
            data = response.json()
        except ValueError as e:
            raise LLMResponseError("Completion body is not JSON", raw=response.text) from e

        content = _extract_message_content(data)
        logger.debug("llm_response_content", request_id=request_id, content=content)

        try:
            parsed = json.loads(content)
        except json.JSONDecodeError as e:
            raise LLMResponseError(f"Model reply is not valid JSON: {e}", raw=content) from e

        if not isinstance(parsed, dict):
            raise LLMResponseError("Model reply is not a JSON object", raw=content)

        logger.info("llm_request_completed", request_id=request_id)
        return parsed
