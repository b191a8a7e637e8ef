"""CLI entry point for Chatvault."""

import json
import logging
import mimetypes
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console

from chatvault.config import ConfigError, StoreConfig, load_config
from chatvault.core.exceptions import ChatVaultError, MigrationError
from chatvault.core.legacy import import_legacy_snapshot
from chatvault.core.storage import ChatRepository
from chatvault.core.validation import format_file_size, validate_image
from chatvault.log import configure_logging

app = typer.Typer(
    name="chatvault",
    help="Local chat history and content-addressed image store.",
    no_args_is_help=True,
)
settings_app = typer.Typer(help="Read and write application settings.", no_args_is_help=True)
app.add_typer(settings_app, name="settings")

console = Console()
err_console = Console(stderr=True)

_EXIT_ERROR = 1
_EXIT_MIGRATION = 2


@app.callback()
def main(
    ctx: typer.Context,
    db: Annotated[
        Path | None, typer.Option("--db", help="Database file (default: CHATVAULT_DB_PATH)")
    ] = None,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Debug logging")] = False,
) -> None:
    """Local chat history and content-addressed image store."""
    configure_logging(logging.DEBUG if verbose else logging.WARNING, err_console)
    try:
        ctx.obj = load_config(db)
    except ConfigError as e:
        err_console.print(f"[red]Invalid configuration:[/red] {e}")
        raise typer.Exit(_EXIT_ERROR) from e


def get_repo(ctx: typer.Context) -> ChatRepository:
    """Create a repository for the configured database."""
    config: StoreConfig = ctx.obj
    return ChatRepository.from_config(config)


@contextmanager
def handle_errors() -> Iterator[None]:
    """Turn chatvault errors into a message and a non-zero exit code."""
    try:
        yield
    except MigrationError as e:
        err_console.print(f"[bold red]Schema migration failed:[/] {e}")
        err_console.print("[red]The database was left at its last good version.[/red]")
        raise typer.Exit(_EXIT_MIGRATION) from e
    except ChatVaultError as e:
        err_console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(_EXIT_ERROR) from e


@app.command()
def migrate(ctx: typer.Context) -> None:
    """Apply pending schema migrations and show the ledger."""
    with handle_errors(), get_repo(ctx) as repo:
        for record in repo.migration_records():
            console.print(
                f"  [cyan]{record.version:>3}[/] {record.description} "
                f"[dim]{record.applied_at:%Y-%m-%d %H:%M:%S}[/]"
            )
        console.print(f"[green]Schema at version {repo.ledger.latest_version}[/green]")


@app.command()
def stats(
    ctx: typer.Context,
    output_json: Annotated[bool, typer.Option("--json", "-j", help="Output as JSON")] = False,
) -> None:
    """Show database statistics."""
    with handle_errors(), get_repo(ctx) as repo:
        result = repo.get_stats()

        if output_json:
            print(json.dumps(result))
        else:
            console.print(f"Images: {result['images']} ({format_file_size(result['total_bytes'])})")
            console.print(f"Image references: {result['references']}")
            console.print(f"Conversations: {result['conversations']}")
            console.print(f"Messages: {result['messages']}")
            console.print(f"Schema version: {result['schema_version']}")


@app.command("hash")
def hash_file(
    file: Annotated[Path, typer.Argument(help="File to hash", exists=True, dir_okay=False)],
) -> None:
    """Print the content digest of a file."""
    print(ChatRepository.calculate_hash(file.read_bytes()))


@app.command()
def attach(
    ctx: typer.Context,
    file: Annotated[Path, typer.Argument(help="Image file", exists=True, dir_okay=False)],
    conversation_id: Annotated[str, typer.Argument(help="Conversation to attach to")],
    mime_type: Annotated[
        str | None, typer.Option("--mime", "-m", help="Mime type (default: from extension)")
    ] = None,
    no_validate: Annotated[
        bool, typer.Option("--no-validate", help="Skip type, size and signature checks")
    ] = False,
    output_json: Annotated[bool, typer.Option("--json", "-j", help="Output as JSON")] = False,
) -> None:
    """Store an image and attach it to a conversation."""
    config: StoreConfig = ctx.obj
    data = file.read_bytes()
    mime_type = mime_type or mimetypes.guess_type(file.name)[0] or "application/octet-stream"

    with handle_errors():
        if not no_validate:
            validate_image(data, mime_type, config.max_image_size)
        with get_repo(ctx) as repo:
            metadata = repo.store_image(data, mime_type, conversation_id)

    if output_json:
        print(json.dumps(metadata.to_dict()))
    else:
        console.print(f"[green]Attached[/green] image [cyan]{metadata.id}[/] to {conversation_id}")
        console.print(f"  {metadata.hash}")
        console.print(f"  {metadata.mime_type}, {format_file_size(metadata.size)}")


@app.command()
def export(
    ctx: typer.Context,
    image_id: Annotated[int, typer.Argument(help="Image ID")],
    output: Annotated[Path, typer.Argument(help="Destination file")],
) -> None:
    """Write a stored image's bytes to a file."""
    with handle_errors(), get_repo(ctx) as repo:
        image = repo.get_image(image_id)
    output.write_bytes(image.data)
    console.print(f"Wrote {format_file_size(image.size)} to {output}")


@app.command()
def lookup(
    ctx: typer.Context,
    digest: Annotated[str, typer.Argument(help="SHA-256 hex digest")],
    output_json: Annotated[bool, typer.Option("--json", "-j", help="Output as JSON")] = False,
) -> None:
    """Find a stored image by digest."""
    with handle_errors(), get_repo(ctx) as repo:
        metadata = repo.get_image_by_hash(digest)
        refs = repo.references.count_for_image(metadata.id) if metadata else 0

    if output_json:
        print(json.dumps(metadata.to_dict() if metadata else None))
    elif metadata is None:
        console.print(f"No image with hash '[cyan]{digest}[/cyan]'")
    else:
        size = format_file_size(metadata.size)
        console.print(f"[cyan]{metadata.id}[/] {metadata.mime_type}, {size}")
        console.print(f"  [dim]Referenced by {refs} conversation(s)[/]")


@app.command()
def images(
    ctx: typer.Context,
    conversation_id: Annotated[str, typer.Argument(help="Conversation ID")],
    output_json: Annotated[bool, typer.Option("--json", "-j", help="Output as JSON")] = False,
) -> None:
    """List the images attached to a conversation."""
    with handle_errors(), get_repo(ctx) as repo:
        result = repo.get_conversation_images(conversation_id)

    if output_json:
        print(json.dumps([m.to_dict() for m in result]))
        return
    if not result:
        console.print(f"No images in '[cyan]{conversation_id}[/cyan]'")
        return
    for metadata in result:
        console.print(
            f"[cyan]{metadata.id}[/] {metadata.hash[:12]} "
            f"{metadata.mime_type} [dim]{format_file_size(metadata.size)}[/]"
        )


@app.command()
def detach(
    ctx: typer.Context,
    conversation_id: Annotated[str, typer.Argument(help="Conversation ID")],
    image_id: Annotated[
        int | None, typer.Option("--image", "-i", help="Only detach this image")
    ] = None,
) -> None:
    """Remove image references of a conversation (images stay until cleanup)."""
    with handle_errors(), get_repo(ctx) as repo:
        if image_id is not None:
            removed = int(repo.detach_image(image_id, conversation_id))
        else:
            removed = repo.delete_conversation_images(conversation_id)
    console.print(f"Removed {removed} image reference(s) from {conversation_id}")


@app.command()
def cleanup(
    ctx: typer.Context,
    dry_run: Annotated[
        bool, typer.Option("--dry-run", "-n", help="List orphans without deleting")
    ] = False,
) -> None:
    """Delete images that no conversation references."""
    with handle_errors(), get_repo(ctx) as repo:
        if dry_run:
            orphans = repo.images.find_orphans()
            for metadata in orphans:
                console.print(
                    f"  [cyan]{metadata.id}[/] {metadata.hash[:12]} [dim]{metadata.size} B[/]"
                )
            console.print(f"{len(orphans)} orphaned image(s)")
            return
        deleted = repo.cleanup_orphaned_images()
    console.print(f"[green]Deleted {deleted} orphaned image(s)[/green]")


@app.command()
def conversations(
    ctx: typer.Context,
    active_only: Annotated[bool, typer.Option("--active", help="Hide archived")] = False,
    output_json: Annotated[bool, typer.Option("--json", "-j", help="Output as JSON")] = False,
) -> None:
    """List saved conversations, most recent first."""
    with handle_errors(), get_repo(ctx) as repo:
        result = repo.conversations.list_all(include_archived=not active_only)

    if output_json:
        print(
            json.dumps(
                [
                    {
                        "id": c.id,
                        "title": c.title,
                        "model": c.model,
                        "archived": c.archived,
                        "messages": len(c.messages),
                        "updated_at": c.updated_at.isoformat(),
                    }
                    for c in result
                ]
            )
        )
        return
    if not result:
        console.print("No conversations")
        return
    for conv in result:
        archived = " [dim](archived)[/]" if conv.archived else ""
        console.print(f"[cyan]{conv.id}[/] {conv.title}{archived}")
        console.print(f"  [dim]{len(conv.messages)} message(s), {conv.model}[/]")


@app.command("delete-conversation")
def delete_conversation(
    ctx: typer.Context,
    conversation_id: Annotated[str, typer.Argument(help="Conversation ID")],
) -> None:
    """Delete a conversation with its messages and image references."""
    with handle_errors(), get_repo(ctx) as repo:
        deleted = repo.delete_conversation(conversation_id)
    if not deleted:
        err_console.print(f"[red]No conversation '{conversation_id}'[/red]")
        raise typer.Exit(_EXIT_ERROR)
    console.print(f"[green]Deleted[/green] {conversation_id}")


@app.command("import-legacy")
def import_legacy(
    ctx: typer.Context,
    file: Annotated[Path, typer.Argument(help="JSON snapshot", exists=True, dir_okay=False)],
) -> None:
    """Import a legacy key/value JSON snapshot."""
    try:
        snapshot = json.loads(file.read_text())
    except json.JSONDecodeError as e:
        err_console.print(f"[red]Invalid JSON in {file}:[/red] {e}")
        raise typer.Exit(_EXIT_ERROR) from e

    with handle_errors(), get_repo(ctx) as repo:
        result = import_legacy_snapshot(repo, snapshot)

    if result.skipped:
        console.print("[dim]Legacy data was already imported, nothing to do[/]")
        return
    console.print("[green]Done![/green]")
    console.print(f"  Conversations: {result.conversations}")
    console.print(f"  Messages: {result.messages}")
    console.print(f"  Settings: {result.settings}")
    console.print(f"  Cached model lists: {result.models_cache_entries}")
    console.print(f"  Favorite model lists: {result.favorite_providers}")


@settings_app.command("get")
def settings_get(
    ctx: typer.Context,
    key: Annotated[str, typer.Argument(help="Setting key")],
) -> None:
    """Print a setting value."""
    with handle_errors(), get_repo(ctx) as repo:
        value = repo.settings.get(key)
    if value is None:
        err_console.print(f"[red]'{key}' is not set[/red]")
        raise typer.Exit(_EXIT_ERROR)
    print(value)


@settings_app.command("set")
def settings_set(
    ctx: typer.Context,
    key: Annotated[str, typer.Argument(help="Setting key")],
    value: Annotated[str, typer.Argument(help="Setting value")],
) -> None:
    """Set a setting value."""
    with handle_errors(), get_repo(ctx) as repo:
        repo.settings.set(key, value)


@settings_app.command("delete")
def settings_delete(
    ctx: typer.Context,
    key: Annotated[str, typer.Argument(help="Setting key")],
) -> None:
    """Delete a setting."""
    with handle_errors(), get_repo(ctx) as repo:
        deleted = repo.settings.delete(key)
    if not deleted:
        console.print(f"[dim]'{key}' was not set[/]")


@settings_app.command("list")
def settings_list(ctx: typer.Context) -> None:
    """List all settings."""
    with handle_errors(), get_repo(ctx) as repo:
        values = repo.settings.all()
    for key, value in values.items():
        console.print(f"[cyan]{key}[/] = {value}")


if __name__ == "__main__":
    app()
