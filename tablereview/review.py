"""
Review generation pipeline.

Table mode (default):
1. Pair each PDF attachment with its parent source
2. Fill one table per source, in parallel, reusing cached tables
3. Aggregate the tables and ask the model for a review
4. Link author-year citations back to the sources
5. Save the review as a standalone note and tag the reviewed sources

PDF mode sends the PDFs themselves to the model and stores the review under
a new report item that links the PDFs.
"""

import html
import logging
from dataclasses import dataclass, field
from typing import Callable, Optional

from markdown_it import MarkdownIt

from .aggregate import aggregate_tables
from .citations import resolve_citations
from .config import ReviewConfig
from .llm import Summarizer
from .scheduler import ParallelFillScheduler
from .store import ItemStore, Note, Source
from .synthesis import ReviewSynthesizer, extract_pdf_contents, generate_from_pdfs
from .table_cache import TableCache
from .table_fill import TableExtractor

logger = logging.getLogger(__name__)

REVIEW_NOTE_TAG = "AI-Review"
REVIEWED_TAG = "AI-Reviewed"
ATTACHMENT_TITLE_PREFIX_LENGTH = 30

ProgressCallback = Callable[[str, int], None]

_markdown = MarkdownIt("commonmark", {"breaks": True}).enable(["table", "strikethrough"])


def format_note_content(title: str, markdown_text: str) -> str:
    """Render review markdown as note HTML under a title heading."""
    return f"<h2>AI Review - {html.escape(title, quote=False)}</h2>\n{_markdown.render(markdown_text)}"


def report_attachment_title(paper_title: str, attachment_title: str) -> str:
    """Display title for a PDF linked under a report: [paper title...] attachment title."""
    if not paper_title:
        return attachment_title
    prefix = paper_title
    if len(paper_title) > ATTACHMENT_TITLE_PREFIX_LENGTH:
        prefix = paper_title[:ATTACHMENT_TITLE_PREFIX_LENGTH] + "..."
    return f"[{prefix}] {attachment_title}"


@dataclass
class ReviewResult:
    note: Note
    content: str
    tables: dict = field(default_factory=dict)
    pairs: list = field(default_factory=list)
    cache_hits: set = field(default_factory=set)
    failures: dict = field(default_factory=dict)


class ReviewPipeline:
    def __init__(self, config: ReviewConfig, store: ItemStore, summarizer: Summarizer, text_extractor):
        self.config = config
        self.store = store
        self.summarizer = summarizer
        self.cache = TableCache(store)
        self.extractor = TableExtractor(store, summarizer, text_extractor)
        self.scheduler = ParallelFillScheduler(self.extractor, self.cache, config.fill_concurrency)
        self.synthesizer = ReviewSynthesizer(summarizer, config)

    def build_pairs(self, pdf_attachments: list) -> list:
        """(Source, Attachment) for every attachment whose parent resolves."""
        pairs = []
        for attachment in pdf_attachments:
            if not attachment.parent_id:
                continue
            parent = self.store.get_source(attachment.parent_id)
            if parent is not None:
                pairs.append((parent, attachment))
        return pairs

    def generate_review(
        self,
        collection_id,
        pdf_attachments: list,
        review_name: str,
        prompt: Optional[str] = None,
        progress: Optional[ProgressCallback] = None,
    ) -> ReviewResult:
        """
        Run the table-driven review for a set of PDF attachments.

        Args:
            collection_id: Collection that receives the review note
            pdf_attachments: Selected PDF attachments
            review_name: Title of the review note
            prompt: Review prompt override
            progress: Called with (message, percentage)

        Returns:
            ReviewResult with the created note and the per-source tables

        Raises:
            SynthesisError: If the model call for the review fails
        """
        report = progress or (lambda message, pct: None)

        pairs = self.build_pairs(pdf_attachments)

        report("Filling tables...", 10)

        def on_fill_progress(done: int, total: int) -> None:
            report(f"Filling tables ({done}/{total})...", 10 + (done * 50) // total)

        tables = self.scheduler.run(
            pairs,
            self.config.table_template,
            self.config.fill_prompt,
            concurrency=self.config.fill_concurrency,
            on_progress=on_fill_progress,
        )

        report("Aggregating tables...", 65)
        aggregated = aggregate_tables(tables, pairs)

        report("Generating review...", 70)
        content = self.synthesizer.synthesize(aggregated, prompt)
        content = resolve_citations(content, [source for source, _ in pairs])

        report("Creating note...", 90)
        note = self.create_standalone_review_note(collection_id, review_name, content)

        self.tag_reviewed_sources([source for source, _ in pairs])

        report("Done!", 100)
        return ReviewResult(
            note=note,
            content=content,
            tables=tables,
            pairs=pairs,
            cache_hits=set(self.scheduler.cache_hits),
            failures=dict(self.scheduler.failures),
        )

    def generate_pdf_review(
        self,
        collection_id,
        pdf_attachments: list,
        review_name: str,
        prompt: Optional[str] = None,
        progress: Optional[ProgressCallback] = None,
    ) -> ReviewResult:
        """
        Review the PDFs directly, without per-source tables.

        The review is stored as a child note of a new report item that links
        every selected PDF. Nothing is written to the library until the
        review text exists.
        """
        report = progress or (lambda message, pct: None)

        pdf_files = extract_pdf_contents(self.store, pdf_attachments, progress=report)
        review_prompt = self.synthesizer.resolve_prompt(prompt)
        content = generate_from_pdfs(
            self.summarizer,
            self.config.provider,
            pdf_files,
            review_prompt,
            progress=report,
            options={"temperature": self.config.temperature},
        )

        pairs = self.build_pairs(pdf_attachments)
        content = resolve_citations(content, [source for source, _ in pairs])

        report("Creating report item...", 85)
        report_item = self.store.create_report(collection_id, review_name)
        self.attach_pdfs_to_report(report_item, pdf_attachments)

        report("Creating note...", 90)
        note = self.store.create_child_note(
            report_item, format_note_content(review_name, content), [REVIEW_NOTE_TAG]
        )
        report("Done!", 100)
        return ReviewResult(note=note, content=content, pairs=pairs)

    def create_standalone_review_note(self, collection_id, review_name: str, content: str) -> Note:
        return self.store.create_standalone_note(
            collection_id, format_note_content(review_name, content), [REVIEW_NOTE_TAG]
        )

    def tag_reviewed_sources(self, sources: list) -> None:
        """Add the reviewed tag to each source; failures are logged and skipped."""
        for source in sources:
            try:
                if REVIEWED_TAG not in self.store.get_tags(source.id):
                    self.store.add_tag(source.id, REVIEWED_TAG)
            except Exception as e:
                logger.warning("Failed to add %s tag: %s (%s)", REVIEWED_TAG, source.title, e)

    def attach_pdfs_to_report(self, report_item: Source, pdf_attachments: list) -> list:
        """Link each PDF under the report; failures are logged and skipped."""
        linked = []
        parent_titles = {}

        for attachment in pdf_attachments:
            try:
                file_path = self.store.attachment_path(attachment)
                if not file_path:
                    logger.warning("PDF attachment has no file path: %s", attachment.id)
                    continue

                paper_title = ""
                if attachment.parent_id:
                    if attachment.parent_id not in parent_titles:
                        parent = self.store.get_source(attachment.parent_id)
                        parent_titles[attachment.parent_id] = (parent.title or "").strip() if parent else ""
                    paper_title = parent_titles[attachment.parent_id]

                title = report_attachment_title(paper_title, attachment.title or "PDF")
                linked.append(self.store.link_attachment(report_item.id, file_path, title))
            except Exception as e:
                logger.warning("Failed to attach PDF %s: %s", attachment.id, e)

        return linked
