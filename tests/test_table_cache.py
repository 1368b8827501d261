"""Tests for the table note cache."""

import threading

from conftest import SAMPLE_TABLE

from tablereview.table_cache import (
    TABLE_NOTE_TAG,
    TableCache,
    build_table_note_html,
    render_table_html,
    table_text_from_note,
)


class TestTableNoteHtml:
    """Rendering and reading back table notes."""

    def test_round_trip_preserves_markdown(self) -> None:
        text = "| Dimension | Content |\n|---|---|\n| Sample | n < 30 & p > 0.05 |\n\nNote: <i>raw</i>"
        note_html = build_table_note_html("A paper", text)
        assert table_text_from_note(note_html) == text

    def test_note_has_heading_and_hidden_region(self) -> None:
        note_html = build_table_note_html("x" * 100, SAMPLE_TABLE)
        assert note_html.startswith(f"<h2>Literature Table - {'x' * 60}</h2>")
        assert '<div style="display:none" data-ai-table-raw>' in note_html
        assert "<table>" in note_html

    def test_legacy_note_falls_back_to_visible_text(self) -> None:
        assert table_text_from_note("<p>Old &amp; plain</p>") == "Old & plain"

    def test_empty_raw_region_is_missing(self) -> None:
        assert table_text_from_note("<div data-ai-table-raw>  </div>") is None

    def test_math_is_wrapped_in_spans(self) -> None:
        rendered = render_table_html("Effect $d = 0.4$ and $$x^2$$")
        assert '<span class="math">$d = 0.4$</span>' in rendered
        assert '<span class="math">$\\displaystyle x^2$</span>' in rendered
        assert '<span class="math"><span' not in rendered


class TestTableCache:
    """Per-source caching semantics."""

    def test_find_without_note_returns_none(self, store, pairs) -> None:
        source, _ = pairs[0]
        assert TableCache(store).find(source) is None

    def test_store_then_find(self, store, pairs) -> None:
        source, _ = pairs[0]
        cache = TableCache(store)
        note = cache.store(source, SAMPLE_TABLE)

        assert note.has_tag(TABLE_NOTE_TAG)
        assert note.parent_id == source.id
        assert cache.find(source) == SAMPLE_TABLE

    def test_second_store_returns_existing_note(self, store, pairs) -> None:
        source, _ = pairs[0]
        cache = TableCache(store)
        first = cache.store(source, SAMPLE_TABLE)
        second = cache.store(source, "| different |")

        assert second.id == first.id
        assert len(store.child_notes(source)) == 1
        assert cache.find(source) == SAMPLE_TABLE

    def test_untagged_notes_are_ignored(self, store, pairs) -> None:
        source, _ = pairs[0]
        store.create_child_note(source, "<p>reading notes</p>", ["todo"])
        assert TableCache(store).find(source) is None

    def test_concurrent_stores_create_one_note(self, store, pairs) -> None:
        source, _ = pairs[0]
        cache = TableCache(store)
        barrier = threading.Barrier(8)
        notes = []

        def store_table(i: int) -> None:
            barrier.wait()
            notes.append(cache.store(source, f"| table {i} |"))

        threads = [threading.Thread(target=store_table, args=(i,)) for i in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        table_notes = [n for n in store.child_notes(source) if n.has_tag(TABLE_NOTE_TAG)]
        assert len(table_notes) == 1
        assert {n.id for n in notes} == {table_notes[0].id}
