"""Anthropic provider implementation."""

import json
from typing import Any, Dict, List, Type

import httpx
from pydantic import BaseModel

from ..models import TokenUsage
from ..modes import Mode
from .base import (
    AuthenticationError,
    BaseProvider,
    GenerationOptions,
    RawOutput,
    UnusableOutputError,
    extract_json,
    schema_instructions,
)

TOOL_NAME = "structured_output"


class AnthropicProvider(BaseProvider):
    """Anthropic Messages API provider."""

    provider_name = "anthropic"
    default_model = "claude-sonnet-4-20250514"
    available_models = [
        "claude-sonnet-4-20250514",
        "claude-opus-4-20250514",
        "claude-3-5-sonnet-20241022",
        "claude-3-5-haiku-20241022",
        "claude-3-opus-20240229",
        "claude-3-sonnet-20240229",
        "claude-3-haiku-20240307",
    ]
    api_key_env = "ANTHROPIC_API_KEY"

    DEFAULT_BASE_URL = "https://api.anthropic.com"
    API_VERSION = "2023-06-01"

    def _get_base_url(self) -> str:
        """Get API base URL."""
        return self.config.base_url or self.DEFAULT_BASE_URL

    def _get_headers(self) -> Dict[str, str]:
        """Get request headers."""
        api_key = self.config.get_api_key()
        if not api_key:
            raise AuthenticationError(
                "Anthropic API key not found. Set ANTHROPIC_API_KEY or provide api_key in config.",
                provider=self.provider_name,
            )

        headers = {
            "x-api-key": api_key,
            "anthropic-version": self.API_VERSION,
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

    def _build_request_body(
        self,
        schema: Type[BaseModel],
        prompt: str,
        options: GenerationOptions,
        mode: Mode,
    ) -> Dict[str, Any]:
        """Build request body for the messages API in the given mode."""
        body: Dict[str, Any] = {
            "model": options.model,
            "messages": [{"role": "user", "content": prompt}],
            "max_tokens": options.max_tokens or self.config.max_tokens,
        }

        temperature = options.temperature if options.temperature is not None else self.config.temperature
        if temperature is not None:
            body["temperature"] = temperature

        if mode == Mode.TOOLS:
            # Forcing the tool makes the model answer through its input schema
            body["tools"] = [
                {
                    "name": TOOL_NAME,
                    "description": schema.__doc__ or f"Return a {schema.__name__} object",
                    "input_schema": schema.model_json_schema(),
                }
            ]
            body["tool_choice"] = {"type": "tool", "name": TOOL_NAME}
        else:
            body["system"] = schema_instructions(schema, mode)

        body.update(self.config.extra_params)
        body.update(options.extra)
        return body

    @staticmethod
    def _parse_usage(data: Dict[str, Any]) -> TokenUsage:
        usage = data.get("usage") or {}
        return TokenUsage.from_counts(
            usage.get("input_tokens", 0),
            usage.get("output_tokens", 0),
        )

    def _parse_response(self, data: Dict[str, Any], model: str, mode: Mode) -> RawOutput:
        """Extract the structured payload from a messages API response."""
        blocks: List[Dict[str, Any]] = data.get("content", [])
        usage = self._parse_usage(data)
        model = data.get("model", model)

        if mode == Mode.TOOLS:
            for block in blocks:
                if block.get("type") == "tool_use" and block.get("name") == TOOL_NAME:
                    payload = block.get("input")
                    return RawOutput(payload, json.dumps(payload), usage, model)
            raise UnusableOutputError("Response contained no tool call")

        text = "".join(block.get("text", "") for block in blocks if block.get("type") == "text")
        return RawOutput(extract_json(text), text, usage, model)

    async def _request(
        self,
        schema: Type[BaseModel],
        prompt: str,
        options: GenerationOptions,
        mode: Mode,
    ) -> RawOutput:
        body = self._build_request_body(schema, prompt, options, mode)
        data = await self._post("/v1/messages", body, options.timeout)
        return self._parse_response(data, options.model, mode)
