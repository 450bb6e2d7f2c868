"""CLI entry point for SecureNotes."""

import os
import subprocess
import sys
import tempfile
from dataclasses import dataclass, field
from pathlib import Path

import click

from . import __version__
from . import convert
from .config import AppConfig, SyncProvider, load_config, save_config
from .credentials import PASSWORD_KEY, TOKEN_KEY, FileCredentialStore
from .errors import (
    DecryptionError,
    SecureNotesError,
    SyncConfigIncompleteError,
    SyncError,
)
from .logger import configure_logging
from .models import DEFAULT_FOLDER, Note
from .paths import credentials_file
from .session import Session
from .store import NoteStore
from .sync import SyncEngine, build_backend, repo_api_url
from .transfer import export_notes, import_notes

PASSWORD_ENV = "SECURENOTES_PASSWORD"
USER_ENV = "SECURENOTES_USER"


@dataclass
class AppContext:
    """State shared by all commands of one invocation."""

    config: AppConfig
    storage_path: Path
    user: str | None = None
    session: Session = field(default_factory=Session)
    store: NoteStore | None = None


def format_date(note_date) -> str:
    """Format a note timestamp for tables."""
    if note_date is None:
        return "Unknown"
    return note_date.strftime("%Y-%m-%d %H:%M")


def _require_user(app: AppContext) -> str:
    if not app.user:
        app.user = click.prompt("Username")
    return app.user


def _open_store(app: AppContext) -> NoteStore:
    """Log in and return the store, asking for the password if needed."""
    if app.store is not None:
        return app.store

    user = _require_user(app)
    store = NoteStore(app.storage_path, app.session)
    try:
        is_new = not store.user_exists(user)
    except ValueError as e:
        raise click.ClickException(str(e))

    password = os.environ.get(PASSWORD_ENV)
    if not password:
        prompt = f'New user "{user}", choose a password' if is_new else f'Password for "{user}"'
        password = click.prompt(prompt, hide_input=True, confirmation_prompt=is_new)

    try:
        if not store.verify_login(user, password):
            raise click.ClickException(f'Wrong password: cannot decrypt notes of user "{user}"')
    except SecureNotesError as e:
        raise click.ClickException(str(e))

    app.session.login(user, password)
    app.store = store
    return store


def _sync_engine(app: AppContext) -> SyncEngine:
    try:
        backend = build_backend(app.config.sync, FileCredentialStore(credentials_file()))
    except SyncConfigIncompleteError as e:
        raise click.ClickException(f"Sync configuration incomplete: {e}")
    if backend is None:
        raise click.ClickException(
            "Cloud sync is not configured. Run 'securenotes sync configure' first."
        )
    return SyncEngine(backend)


def _auto_sync(app: AppContext) -> None:
    """Merge with the remote after a change when auto sync is enabled."""
    if not app.config.sync.auto_sync or app.config.sync.provider == SyncProvider.NONE:
        return
    user = _require_user(app)
    try:
        backend = build_backend(app.config.sync, FileCredentialStore(credentials_file()))
        if backend is None:
            return
        result = SyncEngine(backend).merge(app.store.document_path(user), user)
    except (SecureNotesError, OSError) as e:
        click.echo(f"Warning: auto sync failed: {e}", err=True)
        return
    if result is not None:
        click.echo(f"Synced {result.notes} notes.")


def _resolve_note(store: NoteStore, identifier: str) -> Note:
    """Find a note by id, title, or unique id prefix."""
    try:
        note = store.get_note(identifier)
        if note:
            return note

        notes = store.list_notes()
        matches = [n for n in notes if n.title == identifier]
        if not matches:
            matches = [n for n in notes if n.id.startswith(identifier)]
    except DecryptionError as e:
        raise click.ClickException(str(e))

    if not matches:
        raise click.ClickException(f"Note not found: {identifier}")
    if len(matches) > 1:
        raise click.ClickException(
            f"'{identifier}' matches {len(matches)} notes; use the note ID instead."
        )
    return matches[0]


def _read_body(body: str | None) -> str:
    """Body from the option, or piped stdin, or empty."""
    if body is not None:
        return body
    if not sys.stdin.isatty():
        return sys.stdin.read()
    return ""


def _print_notes(notes: list[Note]) -> None:
    click.echo(f"{'ID':<10} {'Title':<40} {'Modified':<18} {'Folder'}")
    click.echo("-" * 80)

    for note in notes:
        raw_title = note.title or "(Untitled)"
        title = raw_title[:38] + ".." if len(raw_title) > 40 else raw_title
        modified = format_date(note.updated_date)
        click.echo(f"{note.id[:8]:<10} {title:<40} {modified:<18} {note.folder}")


@click.group()
@click.version_option(version=__version__, prog_name="securenotes")
@click.option(
    "--storage-path",
    envvar="SECURENOTES_STORAGE_PATH",
    type=click.Path(file_okay=False),
    help="Directory holding the encrypted note files",
)
@click.option("--user", "-u", envvar=USER_ENV, help="Username whose notes to open")
@click.option("--verbose", "-v", is_flag=True, help="Show debug logging")
@click.pass_context
def cli(ctx: click.Context, storage_path: str | None, user: str | None, verbose: bool):
    """SecureNotes - encrypted notes with cloud sync."""
    configure_logging(verbose)
    config = load_config()
    ctx.obj = AppContext(
        config=config,
        storage_path=config.resolve_storage_path(storage_path),
        user=user,
    )


@cli.command()
@click.pass_obj
def login(app: AppContext):
    """Check a user's password (creates the user on first use)."""
    store = _open_store(app)
    if store.user_exists(app.user):
        click.echo(f"Logged in as {app.user}")
    else:
        click.echo(f'New user "{app.user}" ready; notes will be stored in {store.storage_path}')


@cli.command("list")
@click.option("--folder", "-f", help="Filter by folder name")
@click.pass_obj
def list_notes(app: AppContext, folder: str | None):
    """List all notes."""
    store = _open_store(app)
    try:
        notes = store.list_notes()
    except SecureNotesError as e:
        raise click.ClickException(str(e))

    if folder:
        notes = [n for n in notes if n.folder == folder]

    if not notes:
        click.echo("No notes found.")
        return

    notes.sort(key=lambda n: n.updated_at, reverse=True)
    _print_notes(notes)
    click.echo(f"\nTotal: {len(notes)} notes")


@cli.command()
@click.argument("query")
@click.option("--folder", "-f", help="Filter by folder name")
@click.option("--title-only", "-t", is_flag=True, help="Search titles only")
@click.pass_obj
def search(app: AppContext, query: str, folder: str | None, title_only: bool):
    """Search notes by title and content."""
    store = _open_store(app)
    try:
        notes = store.search_notes(query, title_only=title_only, folder=folder)
    except SecureNotesError as e:
        raise click.ClickException(str(e))

    if not notes:
        click.echo(f"No notes found matching '{query}'.")
        return

    _print_notes(notes)
    click.echo(f"\nFound: {len(notes)} notes matching '{query}'")


@cli.command()
@click.argument("identifier")
@click.option("--raw", is_flag=True, help="Print the stored HTML instead of Markdown")
@click.pass_obj
def show(app: AppContext, identifier: str, raw: bool):
    """Show a note's content by ID or title."""
    note = _resolve_note(_open_store(app), identifier)

    click.echo(f"Title: {note.title or '(Untitled)'}")
    click.echo(f"Folder: {note.folder}")
    click.echo(f"Modified: {format_date(note.updated_date)}")
    click.echo(f"Created: {format_date(note.created_date)}")
    click.echo(f"ID: {note.id}")
    click.echo("-" * 40)

    content = note.content if raw else convert.html_to_markdown(note.content)
    click.echo(content or "(No content)")


@cli.command()
@click.argument("title")
@click.option("--body", "-b", help="Note body (Markdown format)")
@click.option("--folder", "-f", default=DEFAULT_FOLDER, show_default=True, help="Folder for the note")
@click.pass_obj
def create(app: AppContext, title: str, body: str | None, folder: str):
    """Create a new note.

    Body can be provided via --body option or piped from stdin.
    Markdown formatting is converted to HTML.
    """
    store = _open_store(app)
    html_body = convert.markdown_to_html(_read_body(body))

    try:
        note = store.create_note(title, html_body, folder)
    except SecureNotesError as e:
        raise click.ClickException(str(e))

    click.echo(f"Created note '{title}' in '{folder}' (ID: {note.id})")
    _auto_sync(app)


@cli.command()
@click.argument("identifier")
@click.option("--title", "-t", "new_title", help="Rename the note")
@click.option("--body", "-b", help="New body content (Markdown format)")
@click.option("--editor", "-e", is_flag=True, help="Open in $EDITOR")
@click.pass_obj
def edit(app: AppContext, identifier: str, new_title: str | None, body: str | None, editor: bool):
    """Edit an existing note.

    IDENTIFIER can be a note ID, ID prefix or title.
    Use --editor to open in $EDITOR, or --body to set content directly.
    Content can also be piped from stdin.
    """
    store = _open_store(app)
    note = _resolve_note(store, identifier)
    current_markdown = convert.html_to_markdown(note.content)

    new_markdown = None
    if body is not None:
        new_markdown = body
    elif editor:
        editor_cmd = os.environ.get("EDITOR", "vim")
        with tempfile.NamedTemporaryFile(mode="w", suffix=".md", delete=False, encoding="utf-8") as f:
            f.write(current_markdown)
            temp_path = f.name

        try:
            result = subprocess.run([editor_cmd, temp_path])
            if result.returncode != 0:
                raise click.ClickException(f"Editor exited with code {result.returncode}")
            with open(temp_path, encoding="utf-8") as f:
                new_markdown = f.read()
        finally:
            os.unlink(temp_path)
    elif not sys.stdin.isatty():
        new_markdown = sys.stdin.read() or None

    if new_markdown is None and new_title is None:
        raise click.ClickException(
            "No content provided. Use --title, --body, --editor, or pipe content."
        )

    title = new_title if new_title is not None else note.title
    if new_markdown is None or new_markdown.strip() == current_markdown.strip():
        content = note.content
    else:
        content = convert.markdown_to_html(new_markdown)

    if title == note.title and content == note.content:
        click.echo("No changes made.")
        return

    try:
        store.update_note(note.id, title, content)
    except SecureNotesError as e:
        raise click.ClickException(str(e))

    click.echo(f"Updated note '{title}'")
    _auto_sync(app)


@cli.command()
@click.argument("identifier")
@click.option("--yes", "-y", is_flag=True, help="Do not ask for confirmation")
@click.pass_obj
def delete(app: AppContext, identifier: str, yes: bool):
    """Delete a note."""
    store = _open_store(app)
    note = _resolve_note(store, identifier)

    if not yes and not click.confirm(f"Delete note '{note.title}'?"):
        click.echo("Delete cancelled.")
        return

    try:
        store.delete_note(note.id)
    except SecureNotesError as e:
        raise click.ClickException(str(e))

    click.echo(f"Deleted note '{note.title}'")
    _auto_sync(app)


@cli.command()
@click.pass_obj
def folders(app: AppContext):
    """List all folders."""
    store = _open_store(app)
    try:
        names = store.folder_names()
        notes = store.list_notes()
    except SecureNotesError as e:
        raise click.ClickException(str(e))

    if not names:
        click.echo("No folders found.")
        return

    for name in names:
        count = sum(1 for n in notes if n.folder == name)
        click.echo(f"  {name:<30} {count} notes")

    click.echo(f"\nTotal: {len(names)} folders")


@cli.command()
@click.argument("name")
@click.pass_obj
def mkfolder(app: AppContext, name: str):
    """Create a folder."""
    store = _open_store(app)
    try:
        store.create_folder(name)
    except (SecureNotesError, ValueError) as e:
        raise click.ClickException(str(e))

    click.echo(f"Created folder '{name}'")
    _auto_sync(app)


@cli.command()
@click.argument("name")
@click.option("--yes", "-y", is_flag=True, help="Do not ask for confirmation")
@click.pass_obj
def rmfolder(app: AppContext, name: str, yes: bool):
    """Delete a folder and all notes in it."""
    store = _open_store(app)
    try:
        count = sum(1 for n in store.list_notes() if n.folder == name)
    except SecureNotesError as e:
        raise click.ClickException(str(e))

    if not yes:
        message = (
            f"Delete folder '{name}' and its {count} notes?" if count
            else f"Delete folder '{name}'?"
        )
        if not click.confirm(message):
            click.echo("Delete cancelled.")
            return

    try:
        removed = store.delete_folder(name)
    except SecureNotesError as e:
        raise click.ClickException(str(e))

    click.echo(f"Deleted folder '{name}' ({removed} notes removed)")
    _auto_sync(app)


@cli.command("export")
@click.argument("directory", type=click.Path(file_okay=False))
@click.pass_obj
def export_cmd(app: AppContext, directory: str):
    """Export notes as Markdown files, one directory per folder."""
    store = _open_store(app)
    try:
        result = export_notes(store, Path(directory))
    except (SecureNotesError, OSError) as e:
        raise click.ClickException(f"Export failed: {e}")

    click.echo(f"Exported {result.notes} notes and {result.folders} folders to {directory}")


@cli.command("import")
@click.argument("directory", type=click.Path(exists=True, file_okay=False))
@click.pass_obj
def import_cmd(app: AppContext, directory: str):
    """Import Markdown files; sub-directories become folders."""
    store = _open_store(app)
    try:
        result = import_notes(store, Path(directory))
    except (SecureNotesError, OSError) as e:
        raise click.ClickException(f"Import failed: {e}")

    if result.notes == 0:
        click.echo("No .md files found to import.")
        return

    click.echo(f"Imported {result.notes} notes ({result.created} new, {result.updated} updated)")
    _auto_sync(app)


@cli.group("config")
def config_group():
    """Show or change persistent settings."""
    pass


@config_group.command("storage-path")
@click.argument("directory", required=False, type=click.Path(file_okay=False))
@click.option("--reset", is_flag=True, help="Go back to the default location")
@click.pass_obj
def storage_path_cmd(app: AppContext, directory: str | None, reset: bool):
    """Show or set the directory holding the encrypted note files."""
    if reset:
        app.config.storage_path = None
    elif directory:
        app.config.storage_path = os.path.abspath(os.path.expanduser(directory))
    else:
        click.echo(str(app.storage_path))
        return

    try:
        save_config(app.config)
    except OSError as e:
        raise click.ClickException(f"Could not save config: {e}")

    click.echo(f"Notes will be stored in {app.config.resolve_storage_path()}")


@cli.group()
def sync():
    """Cloud sync of the encrypted notes file."""
    pass


@sync.command()
@click.option(
    "--provider",
    type=click.Choice([p.value for p in SyncProvider]),
    prompt="Sync provider",
    help="none, webdav (Nextcloud, ownCloud...), github, or custom",
)
@click.option("--auto-sync/--no-auto-sync", default=None, help="Merge after every change")
@click.pass_obj
def configure(app: AppContext, provider: str, auto_sync: bool | None):
    """Choose and configure a sync backend."""
    sync_config = app.config.sync
    sync_config.provider = SyncProvider(provider)
    credentials = FileCredentialStore(credentials_file())

    if sync_config.provider == SyncProvider.WEBDAV:
        sync_config.url = click.prompt(
            "WebDAV URL (e.g. https://cloud.example.com/remote.php/dav/files/user/SecureNotes)"
        )
        sync_config.username = click.prompt("Username")
        credentials.store(PASSWORD_KEY, click.prompt("Password", hide_input=True))
    elif sync_config.provider == SyncProvider.GITHUB:
        repo = click.prompt("GitHub repository (owner/repo-name)")
        sync_config.url = repo_api_url(repo)
        credentials.store(TOKEN_KEY, click.prompt("Personal access token", hide_input=True))
    elif sync_config.provider == SyncProvider.CUSTOM:
        sync_config.url = click.prompt("Server API URL")
        token = click.prompt("API token (optional)", default="", hide_input=True, show_default=False)
        if token:
            credentials.store(TOKEN_KEY, token)

    if auto_sync is not None:
        sync_config.auto_sync = auto_sync

    save_config(app.config)

    if sync_config.provider == SyncProvider.NONE:
        click.echo("Cloud sync disabled.")
    else:
        click.echo(f"{sync_config.provider.value} sync configured.")


@sync.command()
@click.pass_obj
def upload(app: AppContext):
    """Upload the local notes file, replacing the remote copy."""
    user = _require_user(app)
    engine = _sync_engine(app)
    local_path = NoteStore(app.storage_path, app.session).document_path(user)

    try:
        engine.upload(local_path, user)
    except (SyncError, OSError) as e:
        raise click.ClickException(f"Upload failed: {e}")

    click.echo("Notes uploaded.")


@sync.command()
@click.option("--yes", "-y", is_flag=True, help="Do not ask for confirmation")
@click.pass_obj
def download(app: AppContext, yes: bool):
    """Download the remote notes file, replacing the local one."""
    user = _require_user(app)
    engine = _sync_engine(app)
    local_path = NoteStore(app.storage_path, app.session).document_path(user)

    if not yes and not click.confirm("Downloading overwrites your local notes. Continue?"):
        click.echo("Download cancelled.")
        return

    try:
        downloaded = engine.download(local_path, user)
    except (SyncError, OSError) as e:
        raise click.ClickException(f"Download failed: {e}")

    if downloaded:
        click.echo("Notes downloaded.")
    else:
        click.echo("No remote notes found.")


@sync.command()
@click.pass_obj
def merge(app: AppContext):
    """Merge local and remote notes; newest version of each note wins."""
    user = _require_user(app)
    engine = _sync_engine(app)
    local_path = NoteStore(app.storage_path, app.session).document_path(user)

    try:
        result = engine.merge(local_path, user)
    except (SecureNotesError, OSError) as e:
        raise click.ClickException(f"Merge failed: {e}")

    if result.uploaded_baseline:
        click.echo("No remote notes yet; uploaded local notes.")
    else:
        click.echo(f"Merge complete: {result.notes} notes, {result.folders} folders.")


if __name__ == "__main__":
    cli()
