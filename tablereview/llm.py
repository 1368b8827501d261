"""
Summarization providers.

The pipeline calls generate(content, is_binary, prompt) and, for providers
that accept several PDFs at once, generate_multi_file(files, prompt). Retries
are the provider's job; callers invoke each method once.
"""

import logging
import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Callable, Optional, Union

from google import genai
from google.genai import types

from .config import ReviewConfig
from .exceptions import ConfigurationError, SummarizationError

logger = logging.getLogger(__name__)

PDF_MIME_TYPE = "application/pdf"


def is_gemini_provider(provider_name: str) -> bool:
    """True for "google" or any provider name mentioning Gemini."""
    name = (provider_name or "").lower()
    return name == "google" or "gemini" in name


class Summarizer(ABC):
    """Language-model collaborator used for table filling and review synthesis."""

    name = "base"
    supports_multi_file = False

    @abstractmethod
    def generate(
        self, content: Union[bytes, str], is_binary: bool, prompt: str, embedded: bool = False
    ) -> str:
        """
        Run one prompt against one document.

        Args:
            content: PDF bytes when is_binary, otherwise plain text
            is_binary: Whether content is a binary PDF
            prompt: Instructions for the model
            embedded: The prompt already contains the text content, so it is not sent twice

        Returns:
            The model's text response
        """

    def generate_multi_file(self, files: list, prompt: str, options: Optional[dict] = None) -> str:
        raise NotImplementedError(f"Provider {self.name} does not accept multiple files")


class GeminiSummarizer(Summarizer):
    """
    Gemini provider.

    Single documents are sent inline; multiple documents go through the File
    API and the uploads are deleted once the call finishes.
    """

    name = "google"
    supports_multi_file = True

    def __init__(
        self,
        api_key: str,
        model_name: str = "gemini-3-pro-preview",
        temperature: float = 0.2,
        retry_attempts: int = 3,
        client=None,
    ):
        self.client = client or genai.Client(api_key=api_key)
        self.model_name = model_name
        self.temperature = temperature
        self.retry_attempts = retry_attempts

    def generate(
        self, content: Union[bytes, str], is_binary: bool, prompt: str, embedded: bool = False
    ) -> str:
        if is_binary:
            contents = [types.Part.from_bytes(data=content, mime_type=PDF_MIME_TYPE), prompt]
        elif embedded:
            contents = [prompt]
        else:
            contents = [content, prompt]
        return self._generate_with_retry(contents, call_context="generate")

    def generate_multi_file(self, files: list, prompt: str, options: Optional[dict] = None) -> str:
        """
        Generate from several PDFs at once.

        Args:
            files: PdfFile objects with a local file_path
            prompt: Instructions for the model
            options: Optional overrides, e.g. {"temperature": 0.4}
        """
        options = options or {}
        uploaded = []
        try:
            for pdf in files:
                uploaded.append(self.upload_pdf(Path(pdf.file_path), display_name=pdf.display_name))
            contents = [
                types.Part.from_uri(file_uri=f.uri, mime_type=f.mime_type or PDF_MIME_TYPE)
                for f in uploaded
            ]
            contents.append(prompt)
            return self._generate_with_retry(
                contents,
                call_context=f"multi-file ({len(files)} PDFs)",
                temperature=options.get("temperature"),
            )
        except SummarizationError:
            raise
        except Exception as e:
            raise SummarizationError(f"Failed to upload PDFs to Gemini: {e}") from e
        finally:
            for f in uploaded:
                self.delete_uploaded_file(f)

    def upload_pdf(self, pdf_path: Path, display_name: Optional[str] = None):
        """Upload PDF to Gemini File API."""
        config = types.UploadFileConfig(display_name=display_name) if display_name else None
        return self.client.files.upload(file=str(pdf_path), config=config)

    def delete_uploaded_file(self, file) -> None:
        """Clean up uploaded file from Gemini."""
        if file is None:
            return
        try:
            self.client.files.delete(name=file.name)
        except Exception as e:
            logger.debug("Could not delete uploaded file %s: %s", getattr(file, "name", "?"), e)

    def _generate_with_retry(self, contents: list, call_context: str, temperature: Optional[float] = None) -> str:
        last_error = None
        for attempt in range(self.retry_attempts):
            try:
                response = self.client.models.generate_content(
                    model=self.model_name,
                    contents=contents,
                    config=types.GenerateContentConfig(
                        temperature=self.temperature if temperature is None else temperature,
                    ),
                )
                text = response.text
                if not text:
                    raise SummarizationError(f"{call_context}: empty response from {self.model_name}")
                return text
            except Exception as e:
                last_error = e

            wait_time = (2 ** attempt) * 2
            logger.warning("%s: attempt %d failed: %s", call_context, attempt + 1, last_error)
            if attempt < self.retry_attempts - 1:
                logger.info("Waiting %ds before retry...", wait_time)
                time.sleep(wait_time)

        raise SummarizationError(
            f"{call_context}: failed after {self.retry_attempts} attempts ({last_error})"
        ) from last_error


ProviderFactory = Callable[[ReviewConfig], Summarizer]

_PROVIDERS: dict = {}


def register_provider(name: str, factory: ProviderFactory) -> None:
    _PROVIDERS[name.lower()] = factory


def _gemini_factory(config: ReviewConfig) -> Summarizer:
    return GeminiSummarizer(
        api_key=config.api_key,
        model_name=config.model,
        temperature=config.temperature,
        retry_attempts=config.retry_attempts,
    )


register_provider("google", _gemini_factory)
register_provider("gemini", _gemini_factory)


def create_summarizer(config: ReviewConfig) -> Summarizer:
    """Instantiate the configured provider."""
    factory = _PROVIDERS.get((config.provider or "").lower())
    if factory is None:
        raise ConfigurationError(
            f"Unknown provider {config.provider!r}; known providers: {', '.join(sorted(_PROVIDERS))}"
        )
    return factory(config)
