"""
Exception types raised by the review pipeline.
"""


class TableReviewError(Exception):
    """Base class for all pipeline errors."""


class ConfigurationError(TableReviewError):
    """Missing API key, missing prompt placeholder or another fatal setting."""


class TableFillError(TableReviewError):
    """
    Filling the table for one source failed.

    Carries the source identifier so the scheduler can record a placeholder
    table for that source and keep going.
    """

    def __init__(self, source_id, message: str):
        self.source_id = source_id
        self.message = message
        super().__init__(f"Source {source_id}: {message}")


class SummarizationError(TableReviewError):
    """The language-model provider failed after all retry attempts."""


class SynthesisError(TableReviewError):
    """The review could not be generated from the aggregated tables or PDFs."""


class ExtractionError(TableReviewError):
    """Text or markdown could not be extracted from a PDF."""


class OCRTimeoutError(ExtractionError):
    """The remote OCR task did not finish within the polling bound."""


class UnrecognizedResponseError(ExtractionError):
    """The remote OCR batch response matched none of the known shapes."""
