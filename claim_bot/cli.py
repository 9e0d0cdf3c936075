"""claim-bot CLI: run one reconcile pass and print the report as JSON."""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any

import typer

from claim_bot.collaborators.notifier import build_notifier
from claim_bot.github.github_auth import load_github_auth_from_env
from claim_bot.github.github_connector import build_connector_from_env
from claim_bot.models.triggers import trigger_from_github_event
from claim_bot.reconciler.errors import TriggerValidationError
from claim_bot.reconciler.service import ReconcileReport, ReconcilerService
from claim_bot.shared.settings import ReconcilerSettings

app = typer.Typer(add_completion=False, help="claim-bot: issue assignment reconciler")


def _configure_logging() -> None:
    level = (os.getenv("CLAIM_BOT_LOG_LEVEL") or "INFO").strip().upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _load_settings() -> ReconcilerSettings:
    try:
        return ReconcilerSettings.from_env()
    except ValueError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=2) from exc


def _build_service(settings: ReconcilerSettings) -> ReconcilerService:
    allowed = None if os.getenv("CLAIM_BOT_ALLOWED_REPOS") else {settings.repo}
    connector = build_connector_from_env(allowed_repos=allowed)
    notifier = build_notifier(settings.slack_webhook_url, settings.slack_channel)
    return ReconcilerService(connector, settings, notifier=notifier)


def _run(payload: dict[str, Any]) -> None:
    _configure_logging()
    settings = _load_settings()
    try:
        report = _build_service(settings).reconcile(payload)
    except TriggerValidationError as exc:
        typer.echo(json.dumps({"error": str(exc), "reason_code": exc.reason_code}, indent=2))
        raise typer.Exit(code=2) from exc
    _emit(report)


def _emit(report: ReconcileReport) -> None:
    typer.echo(json.dumps(report.to_dict(), indent=2))
    if report.failed:
        raise typer.Exit(code=1)


@app.command()
def sweep() -> None:
    """Release stale claims and settle expired grace periods across open issues."""
    _run({"kind": "sweep"})


@app.command()
def comment(
    item: int = typer.Option(..., "--item"),
    actor: str = typer.Option(..., "--actor"),
    text: str = typer.Option(..., "--text"),
    actor_type: str = typer.Option("User", "--actor-type"),
) -> None:
    """Handle one issue comment (``/assign``, ``/unassign``, ``/bounty $N``)."""
    _run({"kind": "comment", "item": item, "actor": actor, "actor_type": actor_type, "text": text})


@app.command("pull-request")
def pull_request(
    action: str = typer.Option(..., "--action"),
    number: int = typer.Option(..., "--number"),
    author: str = typer.Option(..., "--author"),
    body: str = typer.Option("", "--body"),
    merged: bool = typer.Option(False, "--merged"),
) -> None:
    """Handle a pull request opened, reopened or closed event."""
    _run(
        {
            "kind": "change_request",
            "action": action,
            "change_request": {
                "number": number,
                "author": author,
                "merged": merged,
                "body": body,
            },
        }
    )


@app.command()
def event(
    name: str = typer.Option("", "--name", help="Defaults to GITHUB_EVENT_NAME."),
    payload_file: Path = typer.Option(
        None, "--payload-file", help="Defaults to GITHUB_EVENT_PATH."
    ),
) -> None:
    """Handle a raw GitHub Actions event payload."""
    _configure_logging()
    event_name = name or os.getenv("GITHUB_EVENT_NAME", "")
    path = payload_file
    if path is None and os.getenv("GITHUB_EVENT_PATH"):
        path = Path(os.environ["GITHUB_EVENT_PATH"])
    if not event_name:
        raise typer.BadParameter("--name or GITHUB_EVENT_NAME is required")
    payload = json.loads(path.read_text()) if path is not None else {}

    settings = _load_settings()
    try:
        trigger = trigger_from_github_event(event_name, payload)
    except TriggerValidationError as exc:
        typer.echo(json.dumps({"error": str(exc), "reason_code": exc.reason_code}, indent=2))
        ignored = exc.reason_code in {"unsupported_event", "unsupported_action"}
        raise typer.Exit(code=0 if ignored else 2) from exc
    _emit(_build_service(settings).reconcile(trigger))


@app.command("show-config")
def show_config() -> None:
    """Print the effective settings with secrets redacted."""
    settings = _load_settings()
    output = {
        "settings": settings.redacted(),
        "auth": load_github_auth_from_env().redacted(),
        "connector": os.getenv("CLAIM_BOT_GITHUB_CONNECTOR", "api"),
    }
    typer.echo(json.dumps(output, indent=2))


if __name__ == "__main__":
    app()
