from __future__ import annotations

from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import TypeVar

import anyio
import msgspec
import typer

from .. import __version__
from ..applescript import ScriptRunner
from ..capture import CaptureEngine, ConversationLister
from ..config import ConfigError
from ..errors import DeskbridgeError, describe_error
from ..logging import get_logger, setup_logging
from ..prompts import ReviewType, format_review_prompt
from ..settings import DeskbridgeSettings, load_settings

logger = get_logger(__name__)

T = TypeVar("T")

_CONFIG_OPTION = typer.Option(
    None, "--config", help="Path to deskbridge.toml (defaults to the usual locations)."
)
_DEBUG_OPTION = typer.Option(
    False, "--debug/--no-debug", help="Log every AppleScript attempt and poll tick."
)


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(__version__)
        raise typer.Exit()


def _load_settings_or_exit(config: Path | None) -> DeskbridgeSettings:
    try:
        settings, _ = load_settings(config)
    except ConfigError as e:
        typer.echo(f"error: {e}", err=True)
        raise typer.Exit(code=1) from e
    return settings


def _run_or_exit(operation: Callable[[], Awaitable[T]], context: str) -> T:
    try:
        return anyio.run(operation)
    except DeskbridgeError as e:
        logger.debug("cli.failed", context=context, error=e.to_dict())
        typer.echo(describe_error(e, context), err=True)
        raise typer.Exit(code=1) from e
    except KeyboardInterrupt:
        raise typer.Exit(code=130) from None


def _ask(
    settings: DeskbridgeSettings,
    prompt: str,
    *,
    conversation: str | None,
    timeout: int | None,
    interval: float | None,
    stable_checks: int | None,
    no_poll: bool,
) -> str:
    if no_poll:
        polling = settings.polling.model_copy(update={"skip_polling": True})
        settings = settings.model_copy(update={"polling": polling})
    engine = CaptureEngine.from_settings(settings)

    async def run() -> str:
        return await engine.ask(
            prompt,
            conversation,
            timeout_ms=None if timeout is None else timeout * 1000,
            interval_ms=None if interval is None else int(interval * 1000),
            required_stable_checks=stable_checks,
        )

    return _run_or_exit(run, "ask")


def ask(
    prompt: str = typer.Argument(..., help="Prompt text to send."),
    conversation: str | None = typer.Option(
        None, "--conversation", "-c", help="Conversation title to continue."
    ),
    timeout: int | None = typer.Option(
        None, "--timeout", min=1, max=300, help="Seconds to wait for the reply."
    ),
    interval: float | None = typer.Option(
        None, "--interval", min=0.5, max=10.0, help="Seconds between window samples."
    ),
    stable_checks: int | None = typer.Option(
        None, "--stable-checks", min=1, help="Identical samples required to finish."
    ),
    no_poll: bool = typer.Option(
        False, "--no-poll", help="Send the prompt and return without waiting."
    ),
    config: Path | None = _CONFIG_OPTION,
    debug: bool = _DEBUG_OPTION,
) -> None:
    """Send a prompt to the desktop app and print its reply."""
    setup_logging(debug=debug)
    settings = _load_settings_or_exit(config)
    reply = _ask(
        settings,
        prompt,
        conversation=conversation,
        timeout=timeout,
        interval=interval,
        stable_checks=stable_checks,
        no_poll=no_poll,
    )
    typer.echo(reply)


def review(
    path: Path = typer.Argument(..., exists=True, dir_okay=False, help="File to review."),
    language: str | None = typer.Option(None, "--language", help="Source language."),
    context: str | None = typer.Option(None, "--context", help="Extra context for the reviewer."),
    review_type: ReviewType | None = typer.Option(
        None, "--type", help="Focus of the review."
    ),
    timeout: int | None = typer.Option(
        None, "--timeout", min=1, max=300, help="Seconds to wait for the review."
    ),
    config: Path | None = _CONFIG_OPTION,
    debug: bool = _DEBUG_OPTION,
) -> None:
    """Ask the desktop app to review a source file."""
    setup_logging(debug=debug)
    settings = _load_settings_or_exit(config)
    try:
        code = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        typer.echo(f"error: failed to read {path}: {e}", err=True)
        raise typer.Exit(code=1) from e
    prompt = format_review_prompt(
        code,
        language=language or path.suffix.lstrip(".") or None,
        context=context,
        review_type=review_type,
    )
    reply = _ask(
        settings,
        prompt,
        conversation=None,
        timeout=timeout,
        interval=None,
        stable_checks=None,
        no_poll=False,
    )
    typer.echo(reply)


def conversations(
    config: Path | None = _CONFIG_OPTION,
    debug: bool = _DEBUG_OPTION,
) -> None:
    """Print the conversation titles visible in the app sidebar as JSON."""
    setup_logging(debug=debug)
    settings = _load_settings_or_exit(config)
    lister = ConversationLister(
        ScriptRunner(settings.script),
        app_name=settings.target.app_name,
        activation_delay_ms=settings.target.activation_delay_ms,
    )
    result = _run_or_exit(lister.list_conversations, "conversations")
    typer.echo(msgspec.json.format(msgspec.json.encode(result), indent=2).decode())


def app_main(
    version: bool = typer.Option(
        False,
        "--version",
        help="Show the version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """Drive a desktop chat app through UI automation."""


def create_app() -> typer.Typer:
    app = typer.Typer(
        add_completion=False,
        no_args_is_help=True,
        help="Send prompts to a desktop chat app and capture its replies.",
    )
    app.callback()(app_main)
    app.command(name="ask")(ask)
    app.command(name="review")(review)
    app.command(name="conversations")(conversations)
    return app


def main() -> None:
    app = create_app()
    app()


if __name__ == "__main__":
    main()
