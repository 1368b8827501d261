"""
Item-store data model and interface.

The pipeline never talks to Zotero directly; it goes through an ItemStore.
ZoteroItemStore (zotero_store.py) is the production implementation,
MemoryItemStore below backs tests and dry runs.
"""

import itertools
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from .utils import extract_year, last_token

ZOTERO_SELECT_URI = "zotero://select/library/items/{key}"


@dataclass
class Creator:
    last_name: str = ""
    first_name: str = ""
    name: str = ""

    @property
    def surname(self) -> str:
        """Structured last name, else last word of the single-field name."""
        if self.last_name and self.last_name.strip():
            return self.last_name.strip()
        if self.name:
            return last_token(self.name)
        return ""


@dataclass
class Source:
    id: str
    key: str
    title: str = ""
    creators: list = field(default_factory=list)
    date: str = ""
    library_id: Optional[str] = None

    @property
    def year(self) -> Optional[str]:
        return extract_year(self.date)

    @property
    def uri(self) -> str:
        return ZOTERO_SELECT_URI.format(key=self.key)


@dataclass
class Attachment:
    id: str
    key: str
    parent_id: Optional[str] = None
    title: str = ""
    path: Optional[Path] = None
    content_type: str = "application/pdf"


@dataclass
class Note:
    id: str
    key: str
    html: str
    parent_id: Optional[str] = None
    tags: list = field(default_factory=list)

    def has_tag(self, tag: str) -> bool:
        return tag in self.tags


class ItemStore(ABC):
    """Create/read/tag/attach operations the pipeline needs from a reference manager."""

    @abstractmethod
    def get_source(self, source_id) -> Optional[Source]:
        ...

    @abstractmethod
    def child_notes(self, source: Source) -> list:
        """Notes attached to source, in creation order."""

    @abstractmethod
    def create_child_note(self, source: Source, html: str, tags: list) -> Note:
        ...

    @abstractmethod
    def create_standalone_note(self, collection_id, html: str, tags: list) -> Note:
        ...

    @abstractmethod
    def get_tags(self, item_id) -> list:
        ...

    @abstractmethod
    def add_tag(self, item_id, tag: str) -> None:
        ...

    @abstractmethod
    def create_report(self, collection_id, title: str) -> Source:
        ...

    @abstractmethod
    def link_attachment(self, parent_id, path: Path, title: str) -> Attachment:
        ...

    @abstractmethod
    def pdf_attachments(self, source: Source) -> list:
        ...

    @abstractmethod
    def attachment_path(self, attachment: Attachment) -> Optional[Path]:
        ...

    @abstractmethod
    def read_attachment(self, attachment: Attachment) -> bytes:
        """
        Raw file bytes.

        Raises:
            OSError: If the file cannot be read
        """

    @abstractmethod
    def fulltext(self, attachment: Attachment) -> str:
        """Indexed full text of an attachment, or an empty string."""


class MemoryItemStore(ItemStore):
    """
    Thread-safe in-memory store.

    Attachment bytes are read from disk when the attachment has a path, or
    from `files` when registered with add_attachment(..., content=...).
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._ids = itertools.count(1)
        self.sources = {}
        self.attachments = {}
        self.notes = {}
        self.tags = {}
        self.collections = {}
        self.files = {}
        self.texts = {}

    def _next_id(self) -> str:
        return f"N{next(self._ids)}"

    def add_source(self, source: Source) -> Source:
        with self._lock:
            self.sources[source.id] = source
        return source

    def add_attachment(
        self,
        attachment: Attachment,
        content: Optional[bytes] = None,
        text: str = "",
    ) -> Attachment:
        with self._lock:
            self.attachments[attachment.id] = attachment
            if content is not None:
                self.files[attachment.id] = content
            if text:
                self.texts[attachment.id] = text
        return attachment

    def get_source(self, source_id) -> Optional[Source]:
        return self.sources.get(source_id)

    def child_notes(self, source: Source) -> list:
        with self._lock:
            return [n for n in self.notes.values() if n.parent_id == source.id]

    def create_child_note(self, source: Source, html: str, tags: list) -> Note:
        with self._lock:
            note_id = self._next_id()
            note = Note(id=note_id, key=note_id, html=html, parent_id=source.id, tags=list(tags))
            self.notes[note_id] = note
        return note

    def create_standalone_note(self, collection_id, html: str, tags: list) -> Note:
        with self._lock:
            note_id = self._next_id()
            note = Note(id=note_id, key=note_id, html=html, tags=list(tags))
            self.notes[note_id] = note
            self.collections.setdefault(collection_id, []).append(note_id)
        return note

    def get_tags(self, item_id) -> list:
        with self._lock:
            if item_id in self.notes:
                return list(self.notes[item_id].tags)
            return list(self.tags.get(item_id, []))

    def add_tag(self, item_id, tag: str) -> None:
        with self._lock:
            if item_id in self.notes:
                if tag not in self.notes[item_id].tags:
                    self.notes[item_id].tags.append(tag)
                return
            tags = self.tags.setdefault(item_id, [])
            if tag not in tags:
                tags.append(tag)

    def create_report(self, collection_id, title: str) -> Source:
        with self._lock:
            report_id = self._next_id()
            report = Source(id=report_id, key=report_id, title=title)
            self.sources[report_id] = report
            self.collections.setdefault(collection_id, []).append(report_id)
        return report

    def link_attachment(self, parent_id, path: Path, title: str) -> Attachment:
        with self._lock:
            att_id = self._next_id()
            attachment = Attachment(id=att_id, key=att_id, parent_id=parent_id, title=title, path=path)
            self.attachments[att_id] = attachment
        return attachment

    def pdf_attachments(self, source: Source) -> list:
        with self._lock:
            return [
                a for a in self.attachments.values()
                if a.parent_id == source.id and a.content_type == "application/pdf"
            ]

    def attachment_path(self, attachment: Attachment) -> Optional[Path]:
        return attachment.path

    def read_attachment(self, attachment: Attachment) -> bytes:
        if attachment.id in self.files:
            return self.files[attachment.id]
        if attachment.path is None:
            raise FileNotFoundError(f"Attachment {attachment.id} has no file")
        return Path(attachment.path).read_bytes()

    def fulltext(self, attachment: Attachment) -> str:
        return self.texts.get(attachment.id, "")
