"""End-to-end tests for the review pipeline with in-memory collaborators."""

import pytest
from conftest import SAMPLE_TABLE, FakeSummarizer

from tablereview.exceptions import SynthesisError
from tablereview.review import (
    REVIEW_NOTE_TAG,
    REVIEWED_TAG,
    ReviewPipeline,
    format_note_content,
    report_attachment_title,
)
from tablereview.scheduler import is_placeholder
from tablereview.store import Attachment
from tablereview.table_cache import TABLE_NOTE_TAG

REVIEW_PROSE = "Seeding accelerates hydration (Nicoleau, 2014), while Begarin (2019) reports slower gains [itemId:2]."


def review_responder(content, is_binary, prompt):
    """Tables for binary calls, prose for the review call."""
    if is_binary:
        return SAMPLE_TABLE
    return REVIEW_PROSE


class TestHelpers:
    def test_report_attachment_title(self) -> None:
        assert report_attachment_title("Short title", "Full Text PDF") == "[Short title] Full Text PDF"
        assert report_attachment_title("A" * 40, "PDF") == f"[{'A' * 30}...] PDF"
        assert report_attachment_title("", "PDF") == "PDF"

    def test_format_note_content(self) -> None:
        note_html = format_note_content("My <review>", "**bold**")
        assert note_html.startswith("<h2>AI Review - My &lt;review&gt;</h2>")
        assert "<strong>bold</strong>" in note_html


class TestGenerateReview:
    """Test suite for ReviewPipeline.generate_review."""

    def test_full_run(self, store, attachments, config, text_extractor) -> None:
        summarizer = FakeSummarizer(respond=review_responder)
        pipeline = ReviewPipeline(config, store, summarizer, text_extractor)
        progress = []

        result = pipeline.generate_review(
            "COLL1", attachments, "Cement review", progress=lambda message, pct: progress.append(pct)
        )

        assert result.note.has_tag(REVIEW_NOTE_TAG)
        assert store.collections["COLL1"] == [result.note.id]
        assert "[(Nicoleau, 2014)](zotero://select/library/items/KEYS1)" in result.content
        assert "[Begarin (2019)](zotero://select/library/items/KEYS2)" in result.content
        assert "[itemId:2]" not in result.content
        assert "<h2>AI Review - Cement review</h2>" in result.note.html

        assert list(result.tables) == ["S1", "S2", "S3"]
        for source_id in ("S1", "S2", "S3"):
            assert REVIEWED_TAG in store.get_tags(source_id)
            notes = store.child_notes(store.get_source(source_id))
            assert [n.has_tag(TABLE_NOTE_TAG) for n in notes] == [True]

        assert progress[0] == 10
        assert progress[-1] == 100
        assert progress == sorted(progress)
        assert {65, 70, 90}.issubset(progress)

    def test_review_prompt_carries_aggregated_tables(self, store, attachments, config, text_extractor) -> None:
        summarizer = FakeSummarizer(respond=review_responder)
        ReviewPipeline(config, store, summarizer, text_extractor).generate_review(
            "COLL1", attachments, "Cement review", prompt="Custom review prompt"
        )

        content, is_binary, prompt = summarizer.calls[-1]
        assert is_binary is False
        assert prompt.startswith("Custom review prompt")
        assert content.count("| Dimension | Content |") == 1
        assert "> literature 2: Early-age strength of blended cements (Begarin, 2019)" in content

    def test_failed_source_degrades_to_placeholder(self, store, attachments, config, text_extractor) -> None:
        summarizer = FakeSummarizer(respond=review_responder, fail_on={b"%PDF-S2"})

        result = ReviewPipeline(config, store, summarizer, text_extractor).generate_review(
            "COLL1", attachments, "Cement review"
        )

        assert is_placeholder(result.tables["S2"])
        assert not is_placeholder(result.tables["S1"])
        assert set(result.failures) == {"S2"}
        assert result.note is not None

    def test_second_run_reuses_cached_tables(self, store, attachments, config, text_extractor) -> None:
        summarizer = FakeSummarizer(respond=review_responder)
        pipeline = ReviewPipeline(config, store, summarizer, text_extractor)

        pipeline.generate_review("COLL1", attachments, "First")
        result = pipeline.generate_review("COLL1", attachments, "Second")

        binary_calls = [call for call in summarizer.calls if call[1]]
        assert len(binary_calls) == 3
        assert result.cache_hits == {"S1", "S2", "S3"}

    def test_orphan_attachments_are_ignored(self, store, attachments, config, text_extractor) -> None:
        orphan = Attachment(id="A9", key="ATT9", parent_id="MISSING", title="Lost")
        pipeline = ReviewPipeline(config, store, FakeSummarizer(respond=review_responder), text_extractor)

        assert [s.id for s, _ in pipeline.build_pairs([orphan, *attachments])] == ["S1", "S2", "S3"]

    def test_tagging_failure_is_isolated(self, store, attachments, config, text_extractor, monkeypatch) -> None:
        original_add_tag = store.add_tag

        def flaky_add_tag(item_id, tag):
            if item_id == "S1":
                raise RuntimeError("write conflict")
            original_add_tag(item_id, tag)

        monkeypatch.setattr(store, "add_tag", flaky_add_tag)
        pipeline = ReviewPipeline(config, store, FakeSummarizer(respond=review_responder), text_extractor)

        result = pipeline.generate_review("COLL1", attachments, "Cement review")

        assert result.note.has_tag(REVIEW_NOTE_TAG)
        assert REVIEWED_TAG not in store.get_tags("S1")
        assert REVIEWED_TAG in store.get_tags("S2")


class TestGeneratePdfReview:
    """Test suite for ReviewPipeline.generate_pdf_review."""

    def test_review_is_stored_under_report(self, store, attachments, config, text_extractor) -> None:
        summarizer = FakeSummarizer(respond=review_responder, multi_file=True)
        pipeline = ReviewPipeline(config, store, summarizer, text_extractor)

        result = pipeline.generate_pdf_review("COLL1", attachments, "PDF review")

        report_id = store.collections["COLL1"][0]
        report = store.get_source(report_id)
        assert report.title == "PDF review"
        assert result.note.parent_id == report_id
        assert result.note.has_tag(REVIEW_NOTE_TAG)
        assert "[(Nicoleau, 2014)](zotero://select/library/items/KEYS1)" in result.content

        linked = [a for a in store.attachments.values() if a.parent_id == report_id]
        assert [a.title for a in linked] == [
            "[Mechanisms of C-S-H seeding in...] Full Text PDF 1",
            "[Early-age strength of blended c...] Full Text PDF 2",
            "[An undated working paper] Full Text PDF 3",
        ]
        assert len(summarizer.multi_file_calls) == 1

    def test_failed_generation_leaves_library_untouched(self, store, attachments, config, text_extractor) -> None:
        summarizer = FakeSummarizer(fail_on={b"%PDF-S1"})
        pipeline = ReviewPipeline(config, store, summarizer, text_extractor)
        attachment_count = len(store.attachments)

        with pytest.raises(SynthesisError, match="provider unavailable"):
            pipeline.generate_pdf_review("COLL1", attachments, "PDF review")

        assert "COLL1" not in store.collections
        assert len(store.attachments) == attachment_count
        assert all(not n.has_tag(REVIEW_NOTE_TAG) for n in store.notes.values())
