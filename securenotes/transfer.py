"""Export notes to a tree of Markdown files and import them back."""

import logging
import re
from dataclasses import dataclass
from pathlib import Path

from .convert import html_to_markdown, markdown_to_html
from .models import DEFAULT_FOLDER, Note
from .store import NoteStore

logger = logging.getLogger(__name__)

_UNSAFE_CHARS = re.compile(r'[/\\?%*:|"<>]')
_TRAILER = re.compile(r"\n---\nCreated: .*\nModified: .*$", re.DOTALL)


@dataclass
class TransferResult:
    notes: int = 0
    folders: int = 0
    created: int = 0
    updated: int = 0


def safe_file_name(title: str) -> str:
    """Replace characters that are not allowed in file names."""
    return _UNSAFE_CHARS.sub("-", title)


def _format_date(note_date) -> str:
    return note_date.strftime("%Y-%m-%d %H:%M:%S") if note_date else "Unknown"


def render_markdown(note: Note) -> str:
    """Markdown file body for a note: heading, content, timestamp trailer."""
    body = html_to_markdown(note.content)
    return (
        f"# {note.title}\n\n{body}\n\n---\n"
        f"Created: {_format_date(note.created_date)}\n"
        f"Modified: {_format_date(note.updated_date)}"
    )


def parse_markdown(text: str, title: str) -> str:
    """Turn an exported Markdown file back into note HTML."""
    text = _TRAILER.sub("", text).strip()
    heading = f"# {title}"
    if text.startswith(heading):
        text = text[len(heading):].strip()
    return markdown_to_html(text)


def export_notes(store: NoteStore, export_root: Path) -> TransferResult:
    """Write every note to ``<export_root>/<folder>/<title>.md``."""
    export_root = Path(export_root)
    result = TransferResult()

    notes_by_folder: dict[str, list[Note]] = {}
    for note in store.list_notes():
        notes_by_folder.setdefault(note.folder, []).append(note)

    for folder in store.folder_names():
        folder_path = export_root / safe_file_name(folder)
        store.fs.make_dirs(folder_path)
        result.folders += 1

        for note in notes_by_folder.get(folder, []):
            file_path = folder_path / f"{safe_file_name(note.title)}.md"
            store.fs.write_text(file_path, render_markdown(note))
            result.notes += 1

    logger.info("Exported %d notes in %d folders to %s", result.notes, result.folders, export_root)
    return result


def import_notes(store: NoteStore, import_root: Path) -> TransferResult:
    """Import ``*.md`` files; sub-directories become folders.

    A note whose folder and title already exist is updated in place.
    """
    import_root = Path(import_root)
    result = TransferResult()
    existing = {(n.folder, n.title): n for n in store.list_notes()}

    def import_file(path: Path, folder: str) -> None:
        title = path.stem
        content = parse_markdown(store.fs.read_text(path), title)
        note = existing.get((folder, title))
        if note is not None:
            store.update_note(note.id, title, content)
            result.updated += 1
        else:
            existing[(folder, title)] = store.create_note(title, content, folder)
            result.created += 1
        result.notes += 1

    for name in store.fs.list_dir(import_root):
        if name.startswith("."):
            continue
        path = import_root / name

        if path.is_dir():
            md_files = [f for f in store.fs.list_dir(path) if f.endswith(".md")]
            if md_files:
                result.folders += 1
            for file_name in md_files:
                import_file(path / file_name, name)
        elif name.endswith(".md"):
            import_file(path, DEFAULT_FOLDER)

    logger.info(
        "Imported %d notes (%d new, %d updated) from %s",
        result.notes, result.created, result.updated, import_root,
    )
    return result
