"""Tests for bounded-concurrency table filling."""

import time
from pathlib import Path

import pytest
from conftest import SAMPLE_TABLE, FakeSummarizer

from tablereview.prompts import DEFAULT_TABLE_FILL_PROMPT, DEFAULT_TABLE_TEMPLATE
from tablereview.scheduler import ParallelFillScheduler, is_placeholder, placeholder_table
from tablereview.store import Attachment
from tablereview.table_cache import TABLE_NOTE_TAG, TableCache
from tablereview.table_fill import TableExtractor


def make_scheduler(store, summarizer, text_extractor, concurrency: int = 2) -> ParallelFillScheduler:
    extractor = TableExtractor(store, summarizer, text_extractor)
    return ParallelFillScheduler(extractor, TableCache(store), concurrency)


def run(scheduler, pairs, **kwargs) -> dict:
    return scheduler.run(pairs, DEFAULT_TABLE_TEMPLATE, DEFAULT_TABLE_FILL_PROMPT, **kwargs)


class TestPlaceholder:
    def test_placeholder_is_recognised(self) -> None:
        text = placeholder_table("Source S1: timeout")
        assert text == "(table fill failed: Source S1: timeout)"
        assert is_placeholder(text)
        assert not is_placeholder(SAMPLE_TABLE)


class TestParallelFillScheduler:
    """Test suite for ParallelFillScheduler."""

    def test_fills_every_pair_in_input_order(self, store, pairs, summarizer, text_extractor) -> None:
        scheduler = make_scheduler(store, summarizer, text_extractor)
        results = run(scheduler, pairs)

        assert list(results) == ["S1", "S2", "S3"]
        assert all(text == SAMPLE_TABLE for text in results.values())
        assert len(summarizer.calls) == 3
        assert scheduler.cache_hits == set()
        assert scheduler.failures == {}

    def test_filled_tables_are_cached(self, store, pairs, summarizer, text_extractor) -> None:
        run(make_scheduler(store, summarizer, text_extractor), pairs)

        for source, _ in pairs:
            notes = [n for n in store.child_notes(source) if n.has_tag(TABLE_NOTE_TAG)]
            assert len(notes) == 1

    def test_cached_source_skips_the_provider(self, store, pairs, summarizer, text_extractor) -> None:
        TableCache(store).store(pairs[0][0], "| cached | table |")
        scheduler = make_scheduler(store, summarizer, text_extractor)

        results = run(scheduler, pairs)

        assert results["S1"] == "| cached | table |"
        assert len(summarizer.calls) == 2
        assert b"%PDF-S1" not in [call[0] for call in summarizer.calls]
        assert scheduler.cache_hits == {"S1"}

    def test_second_run_is_served_from_cache(self, store, pairs, summarizer, text_extractor) -> None:
        scheduler = make_scheduler(store, summarizer, text_extractor)
        first = run(scheduler, pairs)
        second = run(scheduler, pairs)

        assert second == first
        assert len(summarizer.calls) == 3
        assert scheduler.cache_hits == {"S1", "S2", "S3"}

    def test_failure_yields_placeholder_for_that_source_only(self, store, pairs, text_extractor) -> None:
        summarizer = FakeSummarizer(fail_on={b"%PDF-S2"})
        scheduler = make_scheduler(store, summarizer, text_extractor)

        results = run(scheduler, pairs)

        assert list(results) == ["S1", "S2", "S3"]
        assert results["S1"] == SAMPLE_TABLE
        assert results["S3"] == SAMPLE_TABLE
        assert is_placeholder(results["S2"])
        assert "provider unavailable" in results["S2"]
        assert set(scheduler.failures) == {"S2"}
        assert TableCache(store).find(pairs[1][0]) is None

    def test_progress_is_strictly_increasing(self, store, pairs, text_extractor) -> None:
        summarizer = FakeSummarizer(delay=0.01)
        scheduler = make_scheduler(store, summarizer, text_extractor, concurrency=3)
        seen = []

        run(scheduler, pairs, on_progress=lambda done, total: seen.append((done, total)))

        assert seen == [(1, 3), (2, 3), (3, 3)]

    @pytest.mark.parametrize("concurrency", [1, 2])
    def test_in_flight_calls_never_exceed_concurrency(self, store, pairs, text_extractor, concurrency) -> None:
        summarizer = FakeSummarizer(delay=0.05)
        scheduler = make_scheduler(store, summarizer, text_extractor)

        run(scheduler, pairs, concurrency=concurrency)

        assert summarizer.max_in_flight <= concurrency
        assert len(summarizer.calls) == 3

    def test_empty_input(self, store, summarizer, text_extractor) -> None:
        seen = []
        results = run(make_scheduler(store, summarizer, text_extractor), [], on_progress=lambda d, t: seen.append(d))

        assert results == {}
        assert seen == []
        assert summarizer.calls == []

    def test_source_with_two_pdfs_reports_the_cached_table(self, store, pairs, text_extractor) -> None:
        """Both PDFs of one source are filled at once; only the first stored table counts."""
        s1 = pairs[0][0]
        second = Attachment(id="A4", key="ATT4", parent_id="S1", path=Path("/library/storage/ATT4/paper.pdf"))
        store.add_attachment(second, content=b"%PDF-S1-supplement")

        def respond(content, is_binary, prompt):
            # The main PDF finishes last, after the supplement's table is stored
            if content == b"%PDF-S1":
                time.sleep(0.05)
            return f"| Dimension | Content |\n|---|---|\n| File | {content.decode()} |"

        scheduler = make_scheduler(store, FakeSummarizer(respond=respond), text_extractor)
        results = run(scheduler, [pairs[0], (s1, second)])

        cached = TableCache(store).find(s1)
        assert results == {"S1": cached}
        assert "%PDF-S1-supplement" in cached
        notes = [n for n in store.child_notes(s1) if n.has_tag(TABLE_NOTE_TAG)]
        assert len(notes) == 1

    def test_failed_pdf_does_not_mask_a_filled_one(self, store, pairs, text_extractor) -> None:
        s1 = pairs[0][0]
        second = Attachment(id="A4", key="ATT4", parent_id="S1", path=Path("/library/storage/ATT4/paper.pdf"))
        store.add_attachment(second, content=b"%PDF-S1-supplement")
        summarizer = FakeSummarizer(fail_on={b"%PDF-S1-supplement"})
        scheduler = make_scheduler(store, summarizer, text_extractor, concurrency=1)

        results = run(scheduler, [(s1, second), pairs[0]])

        assert results["S1"] == SAMPLE_TABLE
        assert scheduler.failures == {}
