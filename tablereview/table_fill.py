"""
Fill the table template for one source PDF.
"""

import logging

from .exceptions import ConfigurationError, TableFillError
from .llm import Summarizer
from .prompts import TEMPLATE_PLACEHOLDER
from .store import Attachment, ItemStore, Source

logger = logging.getLogger(__name__)


def build_fill_prompt(fill_prompt: str, table_template: str) -> str:
    """Substitute the table template into the fill prompt."""
    if TEMPLATE_PLACEHOLDER not in fill_prompt:
        raise ConfigurationError(f"Table fill prompt is missing the {TEMPLATE_PLACEHOLDER} placeholder")
    return fill_prompt.replace(TEMPLATE_PLACEHOLDER, table_template)


class TableExtractor:
    """
    Turns one source PDF into one filled table.

    The PDF is sent as binary when it can be read; otherwise the source's
    plain text is sent instead.
    """

    def __init__(self, store: ItemStore, summarizer: Summarizer, text_extractor):
        self.store = store
        self.summarizer = summarizer
        self.text_extractor = text_extractor

    def fill(self, source: Source, attachment: Attachment, table_template: str, fill_prompt: str) -> str:
        """
        Fill the table for one source.

        Args:
            source: The bibliographic item
            attachment: Its PDF attachment
            table_template: Markdown table template
            fill_prompt: Prompt containing the template placeholder

        Returns:
            The provider's filled table, verbatim

        Raises:
            TableFillError: On any unrecoverable read or provider failure
        """
        title = source.title or "Unknown title"

        file_path = self.store.attachment_path(attachment)
        if not file_path:
            raise TableFillError(source.id, f"PDF attachment has no file path: {attachment.id}")

        try:
            content = self.store.read_attachment(attachment)
            is_binary = True
        except OSError as e:
            logger.info("Could not read %s (%s); falling back to text for %s", file_path, e, title[:30])
            try:
                content = self.text_extractor.extract_text(source)
            except Exception as text_error:
                raise TableFillError(source.id, f"Text fallback failed: {text_error}") from text_error
            is_binary = False

        prompt = build_fill_prompt(fill_prompt, table_template)

        logger.debug("Filling table: %s", title[:30])
        try:
            result = self.summarizer.generate(content, is_binary, prompt)
        except Exception as e:
            raise TableFillError(source.id, str(e)) from e

        logger.debug("Table filled: %s", title[:30])
        return result
