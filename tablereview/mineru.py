"""
MinerU remote OCR client.

Flow: request a presigned upload URL for a batch of one file, PUT the PDF,
poll the batch until it is done, download the result zip and return its
first markdown file.
"""

import io
import logging
import time
import zipfile
from dataclasses import dataclass
from typing import Callable, Optional

import httpx

from .exceptions import ExtractionError, OCRTimeoutError, UnrecognizedResponseError
from .store import ItemStore, Source

logger = logging.getLogger(__name__)

MINERU_BASE_URL = "https://mineru.net"
UPLOAD_FILE_NAME = "document.pdf"


@dataclass
class BatchUpload:
    put_url: str
    batch_id: str


def _file_urls_list(data: dict, file_name: str) -> Optional[str]:
    urls = data.get("file_urls")
    return urls[0] if isinstance(urls, list) and urls else None


def _urls_list(data: dict, file_name: str) -> Optional[str]:
    urls = data.get("urls")
    return urls[0] if isinstance(urls, list) and urls else None


def _urls_by_name(data: dict, file_name: str) -> Optional[str]:
    urls = data.get("urls")
    return urls.get(file_name) if isinstance(urls, dict) else None


def _items_list(data: dict, file_name: str) -> Optional[str]:
    items = data.get("items")
    if isinstance(items, list) and items and isinstance(items[0], dict):
        return items[0].get("url")
    return None


def _upload_url(data: dict, file_name: str) -> Optional[str]:
    return data.get("upload_url")


# Known layouts of the batch response, most common first
BATCH_RESPONSE_SHAPES: list = [
    ("data.file_urls[0]", _file_urls_list),
    ("data.urls[0]", _urls_list),
    ("data.urls[<name>]", _urls_by_name),
    ("data.items[0].url", _items_list),
    ("data.upload_url", _upload_url),
]


def decode_batch_response(payload: dict, file_name: str = UPLOAD_FILE_NAME) -> BatchUpload:
    """
    Normalize a file-urls/batch response to a BatchUpload.

    Raises:
        UnrecognizedResponseError: If no known shape yields both a URL and a batch id
    """
    data = payload.get("data") if isinstance(payload, dict) else None
    if not isinstance(data, dict):
        raise UnrecognizedResponseError(f"MinerU batch response has no data object: {payload!r}")

    batch_id = data.get("batch_id")
    for shape_name, probe in BATCH_RESPONSE_SHAPES:
        put_url = probe(data, file_name)
        if put_url and batch_id:
            logger.debug("MinerU batch response matched shape %s", shape_name)
            return BatchUpload(put_url=put_url, batch_id=str(batch_id))

    raise UnrecognizedResponseError(f"MinerU API returned unexpected batch response: {payload!r}")


class MineruClient:
    """
    Markdown extraction through the MinerU batch API.

    Polls every poll_interval seconds, at most max_polls times, before
    giving up with OCRTimeoutError.
    """

    def __init__(
        self,
        api_key: str,
        store: ItemStore,
        base_url: str = MINERU_BASE_URL,
        poll_interval: float = 5.0,
        max_polls: int = 60,
        http_client: Optional[httpx.Client] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if not api_key:
            raise ExtractionError("MinerU API Key not configured.")
        self.api_key = api_key
        self.store = store
        self.base_url = base_url.rstrip("/")
        self.poll_interval = poll_interval
        self.max_polls = max_polls
        self.http = http_client or httpx.Client(timeout=60.0)
        self._sleep = sleep

    @property
    def _auth_headers(self) -> dict:
        return {"Authorization": f"Bearer {self.api_key}"}

    def extract_markdown(self, source: Source) -> str:
        attachments = self.store.pdf_attachments(source)
        if not attachments:
            raise ExtractionError("No PDF attachment found.")
        attachment = attachments[0]
        file_path = self.store.attachment_path(attachment)
        if not file_path:
            raise ExtractionError("PDF file path not found.")

        logger.info("Starting MinerU parsing of %s", file_path)
        try:
            file_data = self.store.read_attachment(attachment)
        except OSError as e:
            raise ExtractionError(f"Could not read {file_path}: {e}") from e

        try:
            upload = self.request_upload()
            self.upload_file(upload.put_url, file_data)
            logger.info("Polling for task completion... Batch ID: %s", upload.batch_id)
            return self.poll_and_download(upload.batch_id)
        except httpx.HTTPError as e:
            raise ExtractionError(f"MinerU request failed: {e}") from e
        except (ValueError, AttributeError) as e:
            raise ExtractionError(f"MinerU returned an unreadable response: {e}") from e

    def request_upload(self, file_name: str = UPLOAD_FILE_NAME) -> BatchUpload:
        response = self.http.post(
            f"{self.base_url}/api/v4/file-urls/batch",
            headers=self._auth_headers,
            json={"files": [{"name": file_name}]},
        )
        if response.is_error:
            raise ExtractionError(f"Failed to get upload URL: {response.text}")
        return decode_batch_response(response.json(), file_name)

    def upload_file(self, put_url: str, file_data: bytes) -> None:
        logger.info("Uploading PDF to MinerU PUT URL...")
        response = self.http.put(put_url, content=file_data)
        if response.is_error:
            raise ExtractionError(
                f"Failed to put upload file, status: {response.status_code}, error: {response.text}"
            )

    def poll_and_download(self, batch_id: str) -> str:
        url = f"{self.base_url}/api/v4/extract-results/batch/{batch_id}"

        for attempt in range(self.max_polls):
            self._sleep(self.poll_interval)

            response = self.http.get(url, headers=self._auth_headers)
            if response.is_error:
                logger.warning("MinerU poll %d returned %d", attempt + 1, response.status_code)
                continue
            data = response.json().get("data") or {}
            results = data.get("extract_result")
            result = results[0] if isinstance(results, list) and results else data
            state = result.get("state")
            logger.debug("MinerU batch %s poll %d: state=%s", batch_id, attempt + 1, state)

            if state == "done":
                zip_url = result.get("full_zip_url")
                if not zip_url:
                    raise ExtractionError("MinerU Task completed but no full_zip_url returned.")
                return self.download_markdown(zip_url)
            if state == "error":
                message = result.get("err_msg") or "unknown error"
                raise ExtractionError(f"MinerU Task failed processing: {message}")

        raise OCRTimeoutError(
            f"MinerU Task timed out after {self.max_polls} polls ({self.max_polls * self.poll_interval:.0f}s)."
        )

    def download_markdown(self, zip_url: str) -> str:
        logger.info("Downloading zip result from %s", zip_url)
        response = self.http.get(zip_url)
        if response.is_error:
            raise ExtractionError(f"Failed to download zip file from {zip_url}")
        return markdown_from_zip(response.content)


def markdown_from_zip(zip_bytes: bytes) -> str:
    """First non-empty .md member of a zip archive, skipping __MACOSX entries."""
    try:
        archive = zipfile.ZipFile(io.BytesIO(zip_bytes))
    except zipfile.BadZipFile as e:
        raise ExtractionError(f"MinerU result is not a zip archive: {e}") from e

    with archive:
        md_names = [
            name for name in archive.namelist()
            if name.endswith(".md") and "__MACOSX" not in name
        ]
        if md_names:
            content = archive.read(md_names[0]).decode("utf-8")
            if content:
                return content

    raise ExtractionError("No valid Markdown file found in the extracted zip.")
