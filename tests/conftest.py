"""Shared test fixtures: schemas, a fake clock and scripted fake providers."""

import json
from typing import Any, List, Optional

import pytest
from pydantic import BaseModel, Field

from structured_client.models import TokenUsage
from structured_client.modes import Mode
from structured_client.providers.base import BaseProvider, ProviderConfig, ProviderResult


class Person(BaseModel):
    """A person mentioned in the text."""

    name: str
    age: int = Field(ge=0)


class Address(BaseModel):
    street: str
    city: str


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeProvider(BaseProvider):
    """
    Provider returning scripted outcomes.

    Each outcome is either an exception to raise or a dict to validate
    against the schema. The last outcome repeats once the script runs out.
    """

    def __init__(
        self,
        name: str = "anthropic",
        outcomes: Optional[List[Any]] = None,
        available: bool = True,
        default_model: str = "claude-3-5-haiku-20241022",
        usage: Optional[TokenUsage] = None,
        response_model: Optional[str] = None,
    ):
        super().__init__(ProviderConfig(api_key="test-key" if available else None))
        self.provider_name = name
        self.default_model = default_model
        self.outcomes = list(outcomes or [{"name": "Ada", "age": 36}])
        self.usage = usage
        self.response_model = response_model
        self.calls: List[Any] = []

    def _create_async_client(self) -> None:
        return None

    async def _request(self, schema, prompt, options, mode):
        raise NotImplementedError

    async def generate(self, schema, prompt, options):
        self.calls.append({"schema": schema, "prompt": prompt, "options": options})
        outcome = self.outcomes.pop(0) if len(self.outcomes) > 1 else self.outcomes[0]
        if isinstance(outcome, BaseException):
            raise outcome

        usage = self.usage or TokenUsage.from_counts(1000, 500)
        return ProviderResult(
            data=schema.model_validate(outcome),
            raw_text=json.dumps(outcome),
            usage=TokenUsage.from_counts(usage.prompt_tokens, usage.completion_tokens),
            model=self.response_model or options.model,
            mode=options.mode or Mode.TOOLS,
        )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def person_schema():
    return Person
