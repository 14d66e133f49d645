from __future__ import annotations

import functools
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Optional

import click
from rich.console import Console
from rich.table import Table

from services.auth_service import AuthService
from services.errors import MirrorError
from services.gmail_service import GmailService
from services.mirror_service import MirrorService
from services.mirror_store import MirrorStore, open_store
from services.reconciler import Reconciler
from services.view_service import categorize, format_timestamp, render_html
from utils.config import AppConfig, load_config
from utils.logger import configure_logging


LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class AppContext:
    config: AppConfig
    store: MirrorStore
    console: Console
    _gmail: Optional[GmailService] = field(default=None)
    _mirror: Optional[MirrorService] = field(default=None)

    @property
    def gmail(self) -> GmailService:
        if self._gmail is None:
            self._gmail = GmailService(self.config, AuthService(self.config))
        return self._gmail

    @property
    def mirror(self) -> MirrorService:
        if self._mirror is None:
            reconciler = Reconciler(
                self.gmail,
                self.store,
                page_size=self.config.page_size,
                max_workers=self.config.concurrency,
            )
            self._mirror = MirrorService(self.gmail, self.store, reconciler)
        return self._mirror


def build_context(env_file: str) -> AppContext:
    config = load_config(env_file)
    configure_logging(config.log_dir, config.log_level)
    return AppContext(config=config, store=open_store(config), console=Console())


def reports_errors(command: Callable) -> Callable:
    """Turn domain failures into a clean CLI error instead of a traceback."""

    @functools.wraps(command)
    def wrapper(*args, **kwargs):
        try:
            return command(*args, **kwargs)
        except (MirrorError, ValueError) as exc:
            LOGGER.error("%s failed: %s", command.__name__, exc)
            raise click.ClickException(str(exc)) from exc

    return wrapper


@click.group()
@click.option("--env-file", default=".env", show_default=True, help="Path to the .env file")
@click.pass_context
def cli(ctx: click.Context, env_file: str) -> None:
    """Mirror one Gmail label into a local store and browse it."""

    try:
        app = build_context(env_file)
    except (MirrorError, ValueError) as exc:
        raise click.ClickException(str(exc)) from exc
    ctx.obj = app
    ctx.call_on_close(app.store.close)


@cli.command("auth")
@click.option("--label-id", default=None, help="Label to sync after authenticating (defaults to SYNC_LABEL_ID)")
@click.pass_obj
@reports_errors
def authenticate(app: AppContext, label_id: Optional[str]) -> None:
    """Run the Google consent flow, refresh stored labels and sync the label."""

    target = app.config.require_label_id(label_id)
    new_count = app.mirror.authenticate(target)
    app.console.print("[bold green]Emails fetched and stored successfully![/bold green]")
    app.console.print(f"{new_count} new email(s) added to the mirror.")


@cli.command("sync")
@click.option("--label-id", default=None, help="Label to sync (defaults to SYNC_LABEL_ID)")
@click.pass_obj
@reports_errors
def sync(app: AppContext, label_id: Optional[str]) -> None:
    """Reconcile the local mirror with Gmail for one label."""

    target = app.config.require_label_id(label_id)
    new_count = app.mirror.synchronize(target)
    app.console.print(f"{new_count} new emails synced.")


@cli.command("labels")
@click.option("--remote/--stored", default=False, help="Ask Gmail directly instead of reading the mirror")
@click.pass_obj
@reports_errors
def labels(app: AppContext, remote: bool) -> None:
    """List Gmail labels and their identifiers."""

    records = app.gmail.list_labels() if remote else app.store.list_labels()
    if not records:
        app.console.print("No labels stored yet. Run the auth command first.")
        return
    table = Table(title="Gmail labels" if remote else "Stored labels")
    table.add_column("ID", overflow="fold")
    table.add_column("Name")
    for record in records:
        table.add_row(record.id, record.name)
    app.console.print(table)


@cli.command("emails")
@click.option("--label-id", default=None, help="Mirrored label to show (defaults to SYNC_LABEL_ID)")
@click.pass_obj
@reports_errors
def emails(app: AppContext, label_id: Optional[str]) -> None:
    """Show mirrored emails grouped by category."""

    target = app.config.require_label_id(label_id)
    grouped = categorize(app.store.find_by_label(target), app.store.list_labels(), app.config.display_categories)
    if not grouped:
        app.console.print(f'No emails found under the "{app.config.display_title}" label.')
        return
    for category, messages in grouped.items():
        table = Table(title=category)
        table.add_column("From")
        table.add_column("Subject")
        table.add_column("Timestamp")
        for message in messages:
            table.add_row(message.sender, message.subject, format_timestamp(message))
        if not messages:
            table.add_row("-", "No emails in this category.", "-")
        app.console.print(table)


@cli.command("render")
@click.option("--label-id", default=None, help="Mirrored label to render (defaults to SYNC_LABEL_ID)")
@click.option("--output", type=click.Path(dir_okay=False, path_type=Path), default=None, help="HTML file to write")
@click.pass_obj
@reports_errors
def render(app: AppContext, label_id: Optional[str], output: Optional[Path]) -> None:
    """Write the categorized HTML view of the mirror."""

    target = app.config.require_label_id(label_id)
    grouped = categorize(app.store.find_by_label(target), app.store.list_labels(), app.config.display_categories)
    destination = output or app.config.html_output
    destination.parent.mkdir(parents=True, exist_ok=True)
    destination.write_text(render_html(app.config.display_title, grouped), encoding="utf-8")
    app.console.print(f"Wrote {destination}")


def main() -> None:
    cli(standalone_mode=True)


if __name__ == "__main__":
    main()
