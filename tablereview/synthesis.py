"""
Review synthesis: one model call over the aggregated tables, or over the
source PDFs themselves in whole-PDF mode.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional, Union

from .config import ReviewConfig
from .exceptions import SynthesisError
from .llm import Summarizer, is_gemini_provider
from .store import ItemStore
from .utils import truncate_text

logger = logging.getLogger(__name__)

TABLES_INTRO = "Below are the structured tables for each source:"

ProgressCallback = Callable[[str, int], None]


class ReviewSynthesizer:
    def __init__(self, summarizer: Summarizer, config: ReviewConfig):
        self.summarizer = summarizer
        self.config = config

    def resolve_prompt(self, prompt_override: Optional[str] = None) -> str:
        """Explicit override, else the configured prompt, else the built-in default."""
        return prompt_override or self.config.effective_review_prompt

    def synthesize(self, aggregated_text: str, prompt_override: Optional[str] = None) -> str:
        """
        Write the review prose for the aggregated tables.

        Raises:
            SynthesisError: If the provider fails
        """
        review_prompt = self.resolve_prompt(prompt_override)
        full_prompt = f"{review_prompt}\n\n{TABLES_INTRO}\n\n{aggregated_text}"
        try:
            return self.summarizer.generate(aggregated_text, False, full_prompt, embedded=True)
        except Exception as e:
            raise SynthesisError(f"Review generation failed: {e}") from e


# ------ whole-PDF mode ------

@dataclass
class PdfFile:
    title: str
    file_path: Path
    content: Union[bytes, str]
    is_binary: bool = True
    index: int = 0

    @property
    def display_name(self) -> str:
        return f"{self.index + 1}_{self.title[:50]}"


def extract_pdf_contents(
    store: ItemStore,
    attachments: list,
    progress: Optional[ProgressCallback] = None,
) -> list:
    """
    Read every attachment into a PdfFile.

    Attachments without a file path or whose extraction fails are skipped.
    A PDF whose bytes cannot be read is kept with empty content.
    """
    contents = []
    total = len(attachments)
    parent_titles = {}
    parent_pdf_count = {}

    for attachment in attachments:
        if attachment.parent_id:
            parent_pdf_count[attachment.parent_id] = parent_pdf_count.get(attachment.parent_id, 0) + 1

    for i, attachment in enumerate(attachments):
        attachment_title = attachment.title or f"PDF {i + 1}"
        if progress:
            progress(f"Extracting ({i + 1}/{total}): {attachment_title[:30]}...", 30 + (i * 20) // max(total, 1))

        try:
            file_path = store.attachment_path(attachment)
            if not file_path:
                logger.warning("PDF attachment has no file path: %s", attachment.id)
                continue

            paper_title = ""
            if attachment.parent_id:
                if attachment.parent_id not in parent_titles:
                    parent = store.get_source(attachment.parent_id)
                    parent_titles[attachment.parent_id] = (parent.title or "").strip() if parent else ""
                paper_title = parent_titles[attachment.parent_id]

            display_title = paper_title or attachment_title
            if paper_title and parent_pdf_count.get(attachment.parent_id, 1) > 1:
                display_title = f"{paper_title} - {attachment_title}"

            try:
                content = store.read_attachment(attachment)
            except OSError as e:
                logger.warning("Could not read PDF file %s: %s", file_path, e)
                content = b""

            contents.append(
                PdfFile(title=display_title, file_path=Path(file_path), content=content, index=len(contents))
            )
        except Exception as e:
            logger.warning("Failed to extract PDF content: %s (%s)", attachment_title, e)

    return contents


def generate_from_pdfs(
    summarizer: Summarizer,
    provider_name: str,
    pdf_files: list,
    prompt: str,
    progress: Optional[ProgressCallback] = None,
    options: Optional[dict] = None,
) -> str:
    """
    Generate a review directly from PDFs.

    Uses the provider's multi-file mode when it has one and is Gemini;
    otherwise sends the first PDF as binary with a numbered title list, or
    falls back to merged text.
    """
    if not pdf_files:
        raise SynthesisError("No PDF content available")

    try:
        if summarizer.supports_multi_file and is_gemini_provider(provider_name):
            if progress:
                progress("Uploading PDFs to Gemini...", 55)
            return summarizer.generate_multi_file(pdf_files, prompt, options or {})
        return _generate_with_merged_text(summarizer, pdf_files, prompt, progress)
    except SynthesisError:
        raise
    except Exception as e:
        raise SynthesisError(f"Review generation from PDFs failed: {e}") from e


def _generate_with_merged_text(
    summarizer: Summarizer,
    pdf_files: list,
    prompt: str,
    progress: Optional[ProgressCallback] = None,
) -> str:
    if progress:
        progress("Generating review with AI (text mode)...", 60)

    combined = ""
    first_binary = None
    for pdf in pdf_files:
        if pdf.is_binary and pdf.content:
            if first_binary is None:
                first_binary = pdf.content
            combined += f"\n\n=== Paper: {pdf.title} ===\n[PDF content]\n"
        elif not pdf.is_binary:
            combined += f"\n\n=== Paper: {pdf.title} ===\n{pdf.content}\n"

    if first_binary is not None:
        titles = "\n".join(f"{i + 1}. {truncate_text(p.title, 120)}" for i, p in enumerate(pdf_files))
        full_prompt = (
            f"{prompt}\n\nThe papers to review are:\n{titles}\n\n"
            "Write the review based on the uploaded PDF content."
        )
        return summarizer.generate(first_binary, True, full_prompt)

    if not combined.strip():
        raise SynthesisError(
            "Provider does not support multiple files and no PDF text could be extracted"
        )

    full_prompt = f"{prompt}\n\nThe papers to review are:\n{combined}"
    return summarizer.generate(combined, False, full_prompt, embedded=True)
