"""OpenAI provider implementation."""

from typing import Any, Dict, List, Type

import httpx
from pydantic import BaseModel

from ..models import TokenUsage
from ..modes import Mode
from .base import (
    AuthenticationError,
    BaseProvider,
    GenerationOptions,
    Message,
    RawOutput,
    UnusableOutputError,
    extract_json,
    schema_instructions,
)

FUNCTION_NAME = "structured_output"


class OpenAIProvider(BaseProvider):
    """OpenAI Chat Completions API provider."""

    provider_name = "openai"
    default_model = "gpt-4o"
    available_models = [
        "gpt-4o",
        "gpt-4o-mini",
        "gpt-4-turbo",
        "gpt-4",
        "gpt-3.5-turbo",
        "o1",
        "o1-mini",
        "o1-preview",
        "o3-mini",
    ]
    api_key_env = "OPENAI_API_KEY"

    DEFAULT_BASE_URL = "https://api.openai.com/v1"

    def _get_base_url(self) -> str:
        """Get API base URL."""
        return self.config.base_url or self.DEFAULT_BASE_URL

    def _get_headers(self) -> Dict[str, str]:
        """Get request headers."""
        api_key = self.config.get_api_key()
        if not api_key:
            raise AuthenticationError(
                "OpenAI API key not found. Set OPENAI_API_KEY or provide api_key in config.",
                provider=self.provider_name,
            )

        headers = {
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
        }
        headers.update(self.config.extra_headers)
        return headers

    def _create_async_client(self) -> httpx.AsyncClient:
        """Create asynchronous HTTP client."""
        return httpx.AsyncClient(
            base_url=self._get_base_url(),
            headers=self._get_headers(),
            timeout=self.config.timeout,
        )

    def _build_messages(self, schema: Type[BaseModel], prompt: str, mode: Mode) -> List[Message]:
        if mode in (Mode.JSON, Mode.MD_JSON):
            return [Message.system(schema_instructions(schema, mode)), Message.user(prompt)]
        return [Message.user(prompt)]

    def _build_request_body(
        self,
        schema: Type[BaseModel],
        prompt: str,
        options: GenerationOptions,
        mode: Mode,
    ) -> Dict[str, Any]:
        """Build request body for chat completion in the given mode."""
        body: Dict[str, Any] = {
            "model": options.model,
            "messages": [m.to_dict() for m in self._build_messages(schema, prompt, mode)],
            "max_tokens": options.max_tokens or self.config.max_tokens,
        }

        temperature = options.temperature if options.temperature is not None else self.config.temperature
        if temperature is not None:
            body["temperature"] = temperature

        json_schema = schema.model_json_schema()
        if mode == Mode.TOOLS:
            body["tools"] = [
                {
                    "type": "function",
                    "function": {
                        "name": FUNCTION_NAME,
                        "description": schema.__doc__ or f"Return a {schema.__name__} object",
                        "parameters": json_schema,
                    },
                }
            ]
            body["tool_choice"] = {"type": "function", "function": {"name": FUNCTION_NAME}}
        elif mode == Mode.JSON_SCHEMA:
            body["response_format"] = {
                "type": "json_schema",
                "json_schema": {"name": schema.__name__, "schema": json_schema},
            }
        elif mode == Mode.JSON:
            body["response_format"] = {"type": "json_object"}

        body.update(self.config.extra_params)
        body.update(options.extra)
        return body

    @staticmethod
    def _parse_usage(data: Dict[str, Any]) -> TokenUsage:
        usage = data.get("usage") or {}
        return TokenUsage.from_counts(
            usage.get("prompt_tokens", 0),
            usage.get("completion_tokens", 0),
            usage.get("total_tokens"),
        )

    def _parse_response(self, data: Dict[str, Any], model: str, mode: Mode) -> RawOutput:
        """Extract the structured payload from a chat completion."""
        choices = data.get("choices") or [{}]
        message = choices[0].get("message") or {}
        usage = self._parse_usage(data)
        model = data.get("model", model)

        if mode == Mode.TOOLS:
            for call in message.get("tool_calls") or []:
                function = call.get("function") or {}
                if function.get("name") == FUNCTION_NAME:
                    arguments = function.get("arguments", "")
                    return RawOutput(extract_json(arguments), arguments, usage, model)
            raise UnusableOutputError("Response contained no function call")

        text = message.get("content") or ""
        return RawOutput(extract_json(text), text, usage, model)

    async def _request(
        self,
        schema: Type[BaseModel],
        prompt: str,
        options: GenerationOptions,
        mode: Mode,
    ) -> RawOutput:
        body = self._build_request_body(schema, prompt, options, mode)
        data = await self._post("/chat/completions", body, options.timeout)
        return self._parse_response(data, options.model, mode)
