"""Command-line interface for structured-client."""

import asyncio
import importlib
import json
import sys
from typing import Optional, Type

import click
from pydantic import BaseModel

from . import __version__
from .client import AUTO, StructuredClient, create_client
from .errors import summarize_errors
from .log import configure_logging
from .models import GenerationRequest, TokenUsage
from .modes import select_mode
from .pricing import calculate_cost, get_supported_models, get_supported_providers, is_model_supported
from .providers import PROVIDER_CLASSES


def load_schema(path: str) -> Type[BaseModel]:
    """Import a pydantic model given as ``module:Class``."""
    module_name, _, attr = path.partition(":")
    if not module_name or not attr:
        raise click.BadParameter(f"Expected 'module:Class', got {path!r}", param_hint="SCHEMA")

    try:
        schema = getattr(importlib.import_module(module_name), attr)
    except (ImportError, AttributeError) as e:
        raise click.BadParameter(f"Cannot load {path}: {e}", param_hint="SCHEMA") from e

    if not (isinstance(schema, type) and issubclass(schema, BaseModel)):
        raise click.BadParameter(f"{path} is not a pydantic model", param_hint="SCHEMA")
    return schema


@click.group()
@click.version_option(version=__version__, prog_name="structured-client")
@click.option("--provider", "-p", type=click.Choice([AUTO, *PROVIDER_CLASSES]), default=AUTO,
              help="LLM provider to use")
@click.option("--model", "-m", help="Model to use")
@click.option("--api-key", "-k", help="API key (or set ANTHROPIC_API_KEY / OPENAI_API_KEY)")
@click.option("--max-retries", "-r", type=int, default=3, help="Attempts per request")
@click.option("--verbose", "-v", is_flag=True, help="Verbose output")
@click.pass_context
def cli(ctx: click.Context, provider: str, model: Optional[str], api_key: Optional[str],
        max_retries: int, verbose: bool) -> None:
    """Schema-validated LLM generation with retry, caching and circuit breaker."""
    ctx.ensure_object(dict)
    ctx.obj["provider"] = provider
    ctx.obj["model"] = model
    ctx.obj["api_key"] = api_key
    ctx.obj["max_retries"] = max_retries
    ctx.obj["verbose"] = verbose

    configure_logging("DEBUG" if verbose else "WARNING")


def get_client(ctx: click.Context) -> StructuredClient:
    """Create client from context."""
    try:
        return create_client(
            provider=ctx.obj["provider"],
            model=ctx.obj["model"],
            api_key=ctx.obj["api_key"],
            max_retries=ctx.obj["max_retries"],
            enable_logging=ctx.obj["verbose"],
        )
    except ValueError as e:
        raise click.UsageError(str(e)) from e


@cli.command()
@click.argument("schema")
@click.argument("prompt")
@click.option("--content", "-c", help="Content to process (use '-' to read stdin)")
@click.option("--max-tokens", "-t", type=int, help="Maximum tokens in response")
@click.option("--temperature", type=float, help="Sampling temperature")
@click.option("--json-output", "-j", is_flag=True, help="Output the full result as JSON")
@click.pass_context
def generate(ctx: click.Context, schema: str, prompt: str, content: Optional[str],
             max_tokens: Optional[int], temperature: Optional[float], json_output: bool) -> None:
    """Generate output matching a pydantic model.

    Example:
        structured-client generate myapp.schemas:Invoice "Extract the invoice" -c - < invoice.txt
        structured-client -p openai generate myapp.schemas:Person "Describe Ada Lovelace"
    """
    model_class = load_schema(schema)
    if content == "-":
        content = sys.stdin.read()

    request = GenerationRequest(
        schema=model_class,
        prompt=prompt,
        content=content,
        temperature=temperature,
        max_tokens=max_tokens,
    )

    async def run() -> None:
        async with get_client(ctx) as client:
            result = await client.generate(request)

        if json_output:
            click.echo(json.dumps(result.to_dict(), indent=2, default=str))
        elif result.success:
            click.echo(result.data.model_dump_json(indent=2))
        else:
            click.echo(summarize_errors(result.errors)["summary"], err=True)
            for error in result.errors:
                click.echo(f"  - {error.message}", err=True)

        if ctx.obj["verbose"]:
            click.echo(
                f"Provider: {result.provider}, Model: {result.model}, "
                f"Attempts: {result.attempts}, Cost: ${result.token_usage.estimated_cost:.6f}",
                err=True,
            )

        if not result.success:
            sys.exit(1)

    asyncio.run(run())


@cli.command()
@click.option("--json-output", "-j", is_flag=True, help="Output as JSON")
@click.pass_context
def providers(ctx: click.Context, json_output: bool) -> None:
    """Show which providers are configured.

    Example:
        structured-client providers
    """
    client = get_client(ctx)
    available = asyncio.run(client.get_available_providers())

    if json_output:
        click.echo(json.dumps(available, indent=2))
        return

    for name in PROVIDER_CLASSES:
        icon = "[OK]" if name in available else "[MISSING KEY]"
        click.echo(f"{icon} {name}")
    if AUTO in available:
        click.echo(f"auto -> {client.resolve_provider(AUTO)}")


@cli.command()
def models() -> None:
    """List available models by provider.

    Example:
        structured-client models
    """
    for name, provider_class in PROVIDER_CLASSES.items():
        click.echo(f"{name}:")
        for model in provider_class.available_models:
            default = " (default)" if model == provider_class.default_model else ""
            click.echo(f"  - {model}{default}")
        click.echo()


@cli.command()
@click.argument("provider", type=click.Choice(list(PROVIDER_CLASSES)))
@click.argument("model", required=False)
def modes(provider: str, model: Optional[str]) -> None:
    """Show the output mode chosen for a provider and model.

    Example:
        structured-client modes anthropic claude-3-5-haiku-20241022
    """
    model = model or PROVIDER_CLASSES[provider].default_model
    selection = select_mode(provider, model)
    click.echo(f"Mode: {selection.mode.name}")
    click.echo(f"Native: {'yes' if selection.is_native else 'no'}")
    click.echo(f"Fallback: {selection.fallback_mode.name}")
    click.echo(selection.reason)


@cli.command()
@click.argument("model", required=False)
@click.option("--prompt-tokens", type=int, default=1000, help="Input tokens")
@click.option("--completion-tokens", type=int, default=500, help="Output tokens")
def pricing(model: Optional[str], prompt_tokens: int, completion_tokens: int) -> None:
    """Show pricing table, or the cost of a request for one model.

    Example:
        structured-client pricing
        structured-client pricing gpt-4o --prompt-tokens 2000
    """
    if model is None:
        for provider in get_supported_providers():
            click.echo(f"{provider}:")
            for name in get_supported_models(provider):
                click.echo(f"  - {name}")
        return

    try:
        cost = calculate_cost(TokenUsage.from_counts(prompt_tokens, completion_tokens), model)
    except ValueError as e:
        raise click.BadParameter(str(e)) from e

    if not is_model_supported(model):
        click.echo(f"Note: no pricing for {model}, using default estimate", err=True)
    click.echo(f"Input:  ${cost.input_cost:.6f}")
    click.echo(f"Output: ${cost.output_cost:.6f}")
    click.echo(f"Total:  ${cost.total_cost:.6f} {cost.currency} (pricing as of {cost.pricing_date})")


def main() -> None:
    """Entry point for CLI."""
    cli(obj={})


if __name__ == "__main__":
    main()
