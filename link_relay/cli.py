"""link-relay CLI: webhook registration and offline event processing."""

from __future__ import annotations

import json
from dataclasses import replace
from pathlib import Path

import typer
from dotenv import load_dotenv

from link_relay.server.monday_auth import load_monday_auth_from_env
from link_relay.server.monday_connector import MondayAPIError, MondayClient, build_client_from_env
from link_relay.server.webhook_handler import WebhookHandler
from link_relay.shared.logging import configure_logging
from link_relay.shared.settings import RelaySettings

DEFAULT_WEBHOOK_EVENT = "change_column_value"

app = typer.Typer(add_completion=False, help="link-relay: subitem parent link propagation")


def _settings() -> RelaySettings:
    load_dotenv()
    try:
        return RelaySettings.from_env()
    except ValueError as exc:
        typer.echo(f"ERROR: {exc}", err=True)
        raise typer.Exit(code=1) from exc


def _build_client(settings: RelaySettings) -> MondayClient:
    auth = load_monday_auth_from_env()
    if settings.client_kind == "api" and not auth.token:
        typer.echo("ERROR: MONDAY_TOKEN environment variable is required", err=True)
        raise typer.Exit(code=1)
    return build_client_from_env(settings, auth=auth)


@app.command()
def status() -> None:
    """Print the effective configuration with secrets redacted."""
    settings = _settings()
    summary = settings.describe()
    summary["auth"] = load_monday_auth_from_env().redacted()
    typer.echo(json.dumps(summary, indent=2))


@app.command("register-webhook")
def register_webhook(
    url: str = typer.Option(..., "--url", envvar="WEBHOOK_URL"),
    board_id: int = typer.Option(0, "--board-id", help="defaults to the subitem board"),
    event: str = typer.Option(DEFAULT_WEBHOOK_EVENT, "--event"),
) -> None:
    """Create a webhook subscription pointing at this service."""
    settings = _settings()
    client = _build_client(settings)
    target_board = board_id or settings.boards.subitem
    typer.echo("Registering webhook...")
    typer.echo(f"  Board ID: {target_board}")
    typer.echo(f"  Webhook URL: {url}")
    typer.echo(f"  Event: {event}")
    try:
        webhook = client.create_webhook(board_id=target_board, url=url, event=event)
    except MondayAPIError as exc:
        typer.echo(f"Failed to register webhook: {exc}", err=True)
        raise typer.Exit(code=1) from exc

    typer.echo("Webhook registered.")
    typer.echo(json.dumps(webhook.as_dict(), indent=2))
    typer.echo('monday.com will POST {"challenge": "..."}; the /webhook route echoes it back.')


@app.command("list-webhooks")
def list_webhooks(
    board_id: int = typer.Option(0, "--board-id", help="defaults to the subitem board"),
) -> None:
    """List webhook subscriptions on a board."""
    settings = _settings()
    client = _build_client(settings)
    target_board = board_id or settings.boards.subitem
    try:
        webhooks = client.list_webhooks(board_id=target_board)
    except MondayAPIError as exc:
        typer.echo(f"Failed to list webhooks: {exc}", err=True)
        raise typer.Exit(code=1) from exc

    if not webhooks:
        typer.echo(f"No webhooks found for board {target_board}.")
        return
    typer.echo(json.dumps([webhook.as_dict() for webhook in webhooks], indent=2))


@app.command("delete-webhook")
def delete_webhook(webhook_id: str = typer.Argument(..., envvar="WEBHOOK_ID")) -> None:
    """Delete a webhook subscription by id."""
    settings = _settings()
    client = _build_client(settings)
    try:
        deleted = client.delete_webhook(webhook_id)
    except MondayAPIError as exc:
        typer.echo(f"Failed to delete webhook {webhook_id}: {exc}", err=True)
        raise typer.Exit(code=1) from exc
    typer.echo(f"Webhook {deleted} deleted.")


@app.command("process-event")
def process_event(
    file: Path = typer.Option(..., "--file", exists=True, dir_okay=False),
    dry_run: bool = typer.Option(False, "--dry-run"),
) -> None:
    """Run the webhook handler against a stored payload and print the outcome."""
    settings = _settings()
    if dry_run:
        settings = replace(settings, dry_run=True)
    configure_logging(settings.log_level)
    try:
        payload = json.loads(file.read_text())
    except json.JSONDecodeError as exc:
        typer.echo(f"Invalid JSON in {file}: {exc}", err=True)
        raise typer.Exit(code=2) from exc

    handler = WebhookHandler(client=_build_client(settings), settings=settings)
    outcome = handler.handle(payload, request_id=f"cli_{file.stem}")
    typer.echo(json.dumps(outcome.as_dict(), indent=2))
    if outcome.status == "failed":
        raise typer.Exit(code=1)


@app.command("sync-subitem")
def sync_subitem(
    subitem_id: int = typer.Argument(..., envvar="SUBITEM_ID"),
    dry_run: bool = typer.Option(False, "--dry-run"),
) -> None:
    """Link a subitem's parent into every main item the subitem points at."""
    settings = _settings()
    if dry_run:
        settings = replace(settings, dry_run=True)
    configure_logging(settings.log_level)

    handler = WebhookHandler(client=_build_client(settings), settings=settings)
    outcome = handler.sync_subitem(subitem_id, request_id=f"cli_sync_{subitem_id}")
    typer.echo(json.dumps(outcome.as_dict(), indent=2))
    if outcome.status == "failed":
        raise typer.Exit(code=1)


if __name__ == "__main__":
    app()
