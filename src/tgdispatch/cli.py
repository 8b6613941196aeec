from __future__ import annotations

from pathlib import Path
from typing import NoReturn

import anyio
import typer

from . import __version__
from .config import ConfigError, DispatchSettings, load_settings
from .logging import get_logger, setup_logging
from .runtime import client_for, load_handler_set, register_webhook, run_bot

logger = get_logger(__name__)

app = typer.Typer(
    add_completion=False,
    no_args_is_help=True,
    help="Classify Telegram updates and dispatch them to registered handlers.",
)
webhook_app = typer.Typer(no_args_is_help=True, help="Manage the bot webhook.")
app.add_typer(webhook_app, name="webhook")

_CONFIG_OPTION = typer.Option(
    None, "--config", help="Path to tgdispatch.toml.", dir_okay=False
)
_DEBUG_OPTION = typer.Option(False, "--debug", help="Verbose console logging.")


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(__version__)
        raise typer.Exit()


def _exit_config_error(error: ConfigError) -> NoReturn:
    typer.echo(f"error: {error}", err=True)
    raise typer.Exit(code=1)


def _load_settings_or_exit(config: Path | None) -> DispatchSettings:
    try:
        return load_settings(config)
    except ConfigError as e:
        _exit_config_error(e)


@app.callback()
def main_callback(
    version: bool = typer.Option(
        False,
        "--version",
        help="Show the version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    _ = version


@app.command()
def run(
    config: Path | None = _CONFIG_OPTION,
    handlers: str | None = typer.Option(
        None, "--handlers", help="Module (or module:attr) defining the handlers."
    ),
    debug: bool = _DEBUG_OPTION,
) -> None:
    """Long-poll Telegram and dispatch every update."""
    setup_logging(debug=debug)
    settings = _load_settings_or_exit(config)
    target = handlers or settings.handlers
    if not target:
        _exit_config_error(
            ConfigError(
                "No handlers configured. Pass --handlers or set `handlers` "
                f"in {settings.config_path}."
            )
        )
    try:
        handler_set = load_handler_set(target)
    except ConfigError as e:
        _exit_config_error(e)
    try:
        anyio.run(run_bot, settings, handler_set)
    except KeyboardInterrupt:
        logger.info("shutdown.interrupted")


async def _set_webhook(settings: DispatchSettings, public_url: str) -> bool:
    bot = client_for(settings)
    try:
        info = await register_webhook(bot, public_url=public_url)
    finally:
        await bot.close()
    if info is None:
        return False
    typer.echo(f"webhook: {info.url} (pending: {info.pending_update_count})")
    return True


async def _delete_webhook(settings: DispatchSettings) -> bool:
    bot = client_for(settings)
    try:
        return await bot.delete_webhook()
    finally:
        await bot.close()


async def _webhook_info(settings: DispatchSettings) -> bool:
    bot = client_for(settings)
    try:
        info = await bot.get_webhook_info()
    finally:
        await bot.close()
    if info is None:
        return False
    typer.echo(f"url: {info.url or '-'}")
    typer.echo(f"pending_update_count: {info.pending_update_count}")
    if info.last_error_message:
        typer.echo(f"last_error_message: {info.last_error_message}")
    return True


@webhook_app.command("set")
def webhook_set(
    url: str | None = typer.Option(
        None, "--url", help="Public base URL; defaults to `webhook_url` in config."
    ),
    config: Path | None = _CONFIG_OPTION,
    debug: bool = _DEBUG_OPTION,
) -> None:
    """Replace the webhook with <url>/telegram/bot<token>."""
    setup_logging(debug=debug)
    settings = _load_settings_or_exit(config)
    public_url = url or settings.webhook_url
    if not public_url:
        _exit_config_error(
            ConfigError(
                f"No webhook URL. Pass --url or set `webhook_url` in "
                f"{settings.config_path}."
            )
        )
    if not anyio.run(_set_webhook, settings, public_url):
        typer.echo("error: failed to set webhook", err=True)
        raise typer.Exit(code=1)


@webhook_app.command("delete")
def webhook_delete(
    config: Path | None = _CONFIG_OPTION,
    debug: bool = _DEBUG_OPTION,
) -> None:
    """Remove the webhook so long polling can be used."""
    setup_logging(debug=debug)
    settings = _load_settings_or_exit(config)
    if not anyio.run(_delete_webhook, settings):
        typer.echo("error: failed to delete webhook", err=True)
        raise typer.Exit(code=1)
    typer.echo("webhook deleted")


@webhook_app.command("info")
def webhook_info(
    config: Path | None = _CONFIG_OPTION,
    debug: bool = _DEBUG_OPTION,
) -> None:
    setup_logging(debug=debug)
    settings = _load_settings_or_exit(config)
    if not anyio.run(_webhook_info, settings):
        typer.echo("error: failed to fetch webhook info", err=True)
        raise typer.Exit(code=1)


def main() -> None:
    app()
