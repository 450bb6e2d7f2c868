"""Tests for Markdown export and import."""

from securenotes.transfer import (
    export_notes,
    import_notes,
    parse_markdown,
    render_markdown,
    safe_file_name,
)


def test_safe_file_name():
    assert safe_file_name('a/b\\c?d%e*f:g|h"i<j>k') == "a-b-c-d-e-f-g-h-i-j-k"


def test_render_and_parse(store):
    note = store.create_note("Plan", "<p>Buy <b>milk</b></p>")
    text = render_markdown(note)

    assert text.startswith("# Plan\n\nBuy **milk**\n\n---\nCreated: ")
    assert "\nModified: " in text
    assert parse_markdown(text, "Plan") == "<p>Buy <b>milk</b></p>"


def test_export_layout(store, tmp_path):
    store.create_folder("empty")
    store.create_note("a/b", "<p>x</p>", "work")
    store.create_note("home note", "<p>y</p>")

    result = export_notes(store, tmp_path / "out")

    assert result.notes == 2
    assert result.folders == 3
    assert (tmp_path / "out" / "empty").is_dir()
    assert (tmp_path / "out" / "work" / "a-b.md").is_file()
    assert (tmp_path / "out" / "default" / "home note.md").is_file()


def test_import_creates_and_updates(store, tmp_path):
    root = tmp_path / "in"
    (root / "work").mkdir(parents=True)
    (root / "work" / "Todo.md").write_text("- ship it", encoding="utf-8")
    (root / "loose.md").write_text("hello", encoding="utf-8")
    (root / ".hidden").mkdir()
    (root / ".hidden" / "skip.md").write_text("no", encoding="utf-8")
    (root / "work" / "notes.txt").write_text("ignored", encoding="utf-8")

    existing = store.create_note("Todo", "<p>old</p>", "work")

    result = import_notes(store, root)

    assert result.notes == 2
    assert result.created == 1
    assert result.updated == 1
    assert "<li>ship it</li>" in store.get_note(existing.id).content

    by_title = {n.title: n for n in store.list_notes()}
    assert set(by_title) == {"Todo", "loose"}
    assert by_title["loose"].folder == "default"


def test_export_then_import_is_stable(store, tmp_path):
    note = store.create_note("Plan", "<p>Buy <b>milk</b></p>", "home")
    export_notes(store, tmp_path / "out")

    result = import_notes(store, tmp_path / "out")

    assert result.updated == 1
    assert result.created == 0
    assert store.get_note(note.id).content == "<p>Buy <b>milk</b></p>"
