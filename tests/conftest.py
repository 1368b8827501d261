"""Pytest configuration and shared fixtures."""

import threading
import time
from pathlib import Path

import pytest

from tablereview.config import ReviewConfig
from tablereview.llm import Summarizer
from tablereview.store import Attachment, Creator, MemoryItemStore, Source

SAMPLE_TABLE = """| Dimension | Content |
|---|---|
| Research question | Does cement hydrate faster with C-S-H seeds? |
| Key findings | Seeding shortens the induction period |"""


class FakeSummarizer(Summarizer):
    """Records every call and answers from a callable.

    Calls whose content is listed in `fail_on` raise RuntimeError. `delay`
    keeps a call in flight long enough to observe overlap between workers.
    """

    name = "fake"

    def __init__(self, respond=None, fail_on=(), delay: float = 0.0, multi_file: bool = False):
        self.respond = respond or (lambda content, is_binary, prompt: SAMPLE_TABLE)
        self.fail_on = set(fail_on)
        self.delay = delay
        self.supports_multi_file = multi_file
        self.calls = []
        self.embedded = []
        self.multi_file_calls = []
        self.in_flight = 0
        self.max_in_flight = 0
        self._lock = threading.Lock()

    def generate(self, content, is_binary, prompt, embedded=False):
        with self._lock:
            self.calls.append((content, is_binary, prompt))
            self.embedded.append(embedded)
            self.in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                time.sleep(self.delay)
            if content in self.fail_on:
                raise RuntimeError("provider unavailable")
            return self.respond(content, is_binary, prompt)
        finally:
            with self._lock:
                self.in_flight -= 1

    def generate_multi_file(self, files, prompt, options=None):
        self.multi_file_calls.append((list(files), prompt, options))
        return "Multi-file review citing (Nicoleau, 2014)."


class FakeTextExtractor:
    """Returns canned text, or raises the given exception."""

    def __init__(self, text: str = "Plain text of the article.", error: Exception = None):
        self.text = text
        self.error = error
        self.calls = []

    def extract_text(self, source):
        self.calls.append(source.id)
        if self.error is not None:
            raise self.error
        return self.text


def make_source(item_id: str, title: str, creators: list, date: str) -> Source:
    return Source(id=item_id, key=f"KEY{item_id}", title=title, creators=creators, date=date)


@pytest.fixture
def store() -> MemoryItemStore:
    """Create an in-memory store with three sources, one PDF each.

    Returns:
        MemoryItemStore: Store holding sources S1-S3 and attachments A1-A3
    """
    store = MemoryItemStore()
    sources = [
        make_source(
            "S1",
            "Mechanisms of C-S-H seeding in cement hydration",
            [Creator(last_name="Nicoleau", first_name="Luc"), Creator(last_name="Gädt")],
            "2014-03-01",
        ),
        make_source(
            "S2",
            "Early-age strength of blended cements",
            [Creator(name="F. Begarin")],
            "June 2019",
        ),
        make_source("S3", "An undated working paper", [], ""),
    ]
    for index, source in enumerate(sources, start=1):
        store.add_source(source)
        store.add_attachment(
            Attachment(
                id=f"A{index}",
                key=f"ATT{index}",
                parent_id=source.id,
                title=f"Full Text PDF {index}",
                path=Path(f"/library/storage/ATT{index}/paper.pdf"),
            ),
            content=f"%PDF-{source.id}".encode(),
        )
    return store


@pytest.fixture
def attachments(store: MemoryItemStore) -> list:
    """Attachments A1-A3 in insertion order."""
    return [store.attachments[f"A{i}"] for i in (1, 2, 3)]


@pytest.fixture
def pairs(store: MemoryItemStore, attachments: list) -> list:
    """(Source, Attachment) tuples in input order."""
    return [(store.get_source(a.parent_id), a) for a in attachments]


@pytest.fixture
def summarizer() -> FakeSummarizer:
    return FakeSummarizer()


@pytest.fixture
def text_extractor() -> FakeTextExtractor:
    return FakeTextExtractor()


@pytest.fixture
def config() -> ReviewConfig:
    """Create a valid configuration for testing.

    Returns:
        ReviewConfig: Config with a test API key and two workers
    """
    return ReviewConfig(api_key="test-api-key", fill_concurrency=2)
