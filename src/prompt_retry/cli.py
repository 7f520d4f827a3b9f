"""CLI interface for prompt-retry"""

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Optional

import click

from prompt_retry.domain.classifiers.error_classifier import classify_error
from prompt_retry.domain.config.retry import RetryConfig
from prompt_retry.domain.models.retry_attempt import RetryAttemptRecord
from prompt_retry.exceptions import ConfigurationError
from prompt_retry.infrastructure.config.config_manager import ConfigManager
from prompt_retry.infrastructure.llm.mock import MockLLMProvider
from prompt_retry.infrastructure.retry import run_with_retry

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False) -> None:
    """Setup logging configuration"""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        force=True,
    )
    logging.getLogger().setLevel(level)


def _die(message: str, verbose: bool = False, exc: Optional[Exception] = None) -> None:
    """Exit with a user-friendly error message"""
    if exc is not None:
        logger.error(message, exc_info=verbose)
    else:
        logger.error(message)
    raise click.ClickException(message)


def _load_config(ctx) -> ConfigManager:
    try:
        return ConfigManager(config_path=ctx.obj.get("config_path"))
    except ConfigurationError as e:
        _die(str(e), verbose=ctx.obj.get("verbose", False), exc=e)


def _resolve_provider(config_manager: ConfigManager, provider: Optional[str]) -> str:
    provider = provider or config_manager.get_default_provider()
    if not provider:
        raise click.UsageError(
            "No provider given. Pass --provider or set default_provider / PROMPT_RETRY_PROVIDER."
        )
    return provider


def _parse_error_argument(error: str, as_json: bool) -> Any:
    """Parse the ERROR argument as a plain message or a JSON payload"""
    if not as_json:
        return error
    try:
        return json.loads(error)
    except json.JSONDecodeError as e:
        raise click.BadParameter(f"invalid JSON: {e}", param_hint="ERROR") from e


def _format_retry_config(retry_config: Optional[RetryConfig]) -> str:
    if retry_config is None:
        return "retry disabled"
    return (
        f"attempts={retry_config.attempts} "
        f"min_delay_ms={retry_config.min_delay_ms} "
        f"max_delay_ms={retry_config.max_delay_ms} "
        f"jitter={retry_config.jitter}"
    )


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose logging")
@click.option(
    "--config",
    type=click.Path(exists=True, path_type=Path),
    help="Path to .prompt-retry.yml config file",
)
@click.pass_context
def cli(ctx, verbose: bool, config: Path):
    """prompt-retry - retry LLM calls on rate limits and overloads"""
    ctx.ensure_object(dict)
    setup_logging(verbose)
    ctx.obj["config_path"] = config
    ctx.obj["verbose"] = verbose


@cli.command()
@click.argument("error", type=str)
@click.option("--json", "as_json", is_flag=True, help="Treat ERROR as a JSON error payload")
def classify(error: str, as_json: bool):
    """Classify an error message or payload.

    ERROR: Error message, or a JSON object with --json
    """
    result = classify_error(_parse_error_argument(error, as_json))
    click.echo(f"retryable: {'yes' if result.retryable else 'no'}")
    click.echo(f"message: {result.message}")
    if result.retry_after_ms is not None:
        click.echo(f"retry_after_ms: {result.retry_after_ms}")


@cli.command(name="config")
@click.argument("provider", required=False)
@click.pass_context
def show_config(ctx, provider: Optional[str]):
    """Show the retry policy resolved for a provider.

    PROVIDER: Provider id (default: configured default_provider)
    """
    config_manager = _load_config(ctx)
    provider = _resolve_provider(config_manager, provider)
    retry_config = config_manager.get_provider_retry_config(provider)
    click.echo(f"{provider}: {_format_retry_config(retry_config)}")


@cli.command()
@click.option("--provider", type=str, help="Provider whose retry policy to use. Overrides config.")
@click.option("--failures", type=click.IntRange(min=0), default=1, show_default=True,
              help="Number of initial calls that fail")
@click.option("--error", "error_message", type=str, default="429 Too Many Requests",
              show_default=True, help="Message of the simulated failure")
@click.option("--status", type=int, help="HTTP status attached to the simulated failure")
@click.option("--retry-after", type=float, help="Retry hint in seconds attached to the failure")
@click.pass_context
def simulate(
    ctx,
    provider: Optional[str],
    failures: int,
    error_message: str,
    status: Optional[int],
    retry_after: Optional[float],
):
    """Run a flaky mock LLM call through the retry policy."""
    verbose = ctx.obj.get("verbose", False)
    config_manager = _load_config(ctx)
    provider = _resolve_provider(config_manager, provider)
    retry_config = config_manager.get_provider_retry_config(provider)
    click.echo(f"{provider}: {_format_retry_config(retry_config)}")

    llm = MockLLMProvider(
        {
            "failures": failures,
            "error": error_message,
            "status": status,
            "retry_after": retry_after,
        }
    )

    def _echo_retry(record: RetryAttemptRecord) -> None:
        click.echo(f"retry {record.describe()}")

    try:
        response = asyncio.run(
            run_with_retry(
                lambda: llm.generate("simulate"),
                retry_config,
                provider=provider,
                on_retry=_echo_retry,
            )
        )
    except Exception as e:
        _die(f"Call failed after {llm.calls} attempt(s): {e}", verbose=verbose, exc=e)

    click.echo(f"Succeeded after {llm.calls} attempt(s): {response}")


def main():
    """Main entry point"""
    cli(obj={})


if __name__ == "__main__":
    main()
