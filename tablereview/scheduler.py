"""
Bounded-concurrency table filling.

N worker threads drain one shared queue of (source, attachment) pairs. Each
pair is answered from the table cache when possible; otherwise the table is
filled and stored. A failing pair yields a placeholder table instead of
aborting the batch.
"""

import logging
import queue
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Optional

from .table_cache import TableCache, table_text_from_note
from .table_fill import TableExtractor

logger = logging.getLogger(__name__)

PLACEHOLDER_PREFIX = "(table fill failed: "

ProgressCallback = Callable[[int, int], None]


def placeholder_table(message: str) -> str:
    return f"{PLACEHOLDER_PREFIX}{message})"


def is_placeholder(table_text: str) -> bool:
    return table_text.startswith(PLACEHOLDER_PREFIX)


class ParallelFillScheduler:
    """
    Fill tables for many sources with at most `concurrency` in flight.

    After a run, `cache_hits` and `failures` hold the ids of sources answered
    from the cache and sources that degraded to a placeholder.
    """

    def __init__(self, extractor: TableExtractor, cache: TableCache, concurrency: int = 3):
        self.extractor = extractor
        self.cache = cache
        self.concurrency = concurrency
        self.cache_hits = set()
        self.failures = {}
        self._stats_lock = threading.Lock()

    def run(
        self,
        pairs: list,
        table_template: str,
        fill_prompt: str,
        concurrency: Optional[int] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> dict:
        """
        Fill tables for every (source, attachment) pair.

        Args:
            pairs: List of (Source, Attachment) tuples
            table_template: Markdown table template
            fill_prompt: Prompt containing the template placeholder
            concurrency: Worker count (defaults to the scheduler's)
            on_progress: Called with (completed, total) after each pair

        Returns:
            Dict of source id -> table text, in the order of `pairs`
        """
        total = len(pairs)
        self.cache_hits = set()
        self.failures = {}
        if total == 0:
            return {}

        workers = min(concurrency or self.concurrency, total)
        pending = queue.Queue()
        for pair in pairs:
            pending.put(pair)

        results = {}
        results_lock = threading.Lock()
        progress_lock = threading.Lock()
        completed = 0

        def worker() -> None:
            nonlocal completed
            while True:
                try:
                    source, attachment = pending.get_nowait()
                except queue.Empty:
                    return
                table = self._fill_one(source, attachment, table_template, fill_prompt)
                # A source with several PDFs keeps its first real table over any placeholder
                with results_lock:
                    previous = results.get(source.id)
                    if previous is None or (is_placeholder(previous) and not is_placeholder(table)):
                        results[source.id] = table
                # Counter and callback share one lock so callbacks see 1, 2, ..., total in order
                with progress_lock:
                    completed += 1
                    if on_progress is not None:
                        on_progress(completed, total)

        logger.info("Filling %d tables with %d workers", total, workers)
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="table-fill") as pool:
            futures = [pool.submit(worker) for _ in range(workers)]
            for future in futures:
                future.result()

        ordered = {}
        for source, _ in pairs:
            if source.id in results and source.id not in ordered:
                ordered[source.id] = results[source.id]
        self.failures = {
            source_id: message
            for source_id, message in self.failures.items()
            if is_placeholder(ordered.get(source_id, ""))
        }
        return ordered

    def _fill_one(self, source, attachment, table_template: str, fill_prompt: str) -> str:
        try:
            existing = self.cache.find(source)
            if existing:
                with self._stats_lock:
                    self.cache_hits.add(source.id)
                return existing
            table = self.extractor.fill(source, attachment, table_template, fill_prompt)
            # The cache keeps the first stored table; report what it holds
            note = self.cache.store(source, table)
            return table_text_from_note(note.html) or table
        except Exception as e:
            logger.warning("Table fill failed: %s (%s)", source.title or source.id, e)
            with self._stats_lock:
                self.failures[source.id] = str(e)
            return placeholder_table(str(e))
