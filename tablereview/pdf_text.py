"""
Plain-text extraction used when a PDF cannot be sent as binary.
"""

import logging

import fitz

from .exceptions import ExtractionError
from .store import ItemStore, Source

logger = logging.getLogger(__name__)


class PdfTextExtractor:
    """
    Text of a source's first readable PDF.

    Tries the store's full-text index first, then PyMuPDF on the local file.
    When a MinerU client is given it is used instead of both.
    """

    def __init__(self, store: ItemStore, mineru_client=None):
        self.store = store
        self.mineru_client = mineru_client

    def extract_text(self, source: Source) -> str:
        if self.mineru_client is not None:
            return self.mineru_client.extract_markdown(source)

        attachments = self.store.pdf_attachments(source)
        if not attachments:
            raise ExtractionError(f"No PDF attachment found for {source.title or source.id}")

        for attachment in attachments:
            text = self.store.fulltext(attachment).strip()
            if text:
                return text
            path = self.store.attachment_path(attachment)
            if path is None:
                continue
            try:
                text = self._read_pdf_text(path).strip()
            except (OSError, RuntimeError, ValueError) as e:
                logger.debug("PyMuPDF could not read %s: %s", path, e)
                continue
            if text:
                return text

        raise ExtractionError(f"Could not extract text for {source.title or source.id}")

    @staticmethod
    def _read_pdf_text(path) -> str:
        with fitz.open(str(path)) as doc:
            return "\n".join(page.get_text() for page in doc)
