"""
Zotero Web API item store built on pyzotero.

Item ids are Zotero item keys. PDF bytes are read from the local Zotero
storage directory when one is configured, otherwise downloaded with
`zot.file`.
"""

import logging
from pathlib import Path
from typing import Optional

import httpx
from pyzotero import zotero, zotero_errors

from .config import ReviewConfig
from .exceptions import ConfigurationError
from .store import Attachment, Creator, ItemStore, Note, Source

logger = logging.getLogger(__name__)


def _created_key(response: dict) -> str:
    """Key of the single item created by zot.create_items."""
    if response.get("failed"):
        raise RuntimeError(f"create_items failed: {response['failed']}")
    successful = response.get("successful") or {}
    if successful:
        return next(iter(successful.values()))["key"]
    success = response.get("success") or {}
    if success:
        return next(iter(success.values()))
    raise RuntimeError(f"create_items returned no item: {response}")


def _tags(data: dict) -> list:
    return [t.get("tag") for t in data.get("tags", []) if t.get("tag")]


class ZoteroItemStore(ItemStore):
    def __init__(self, client, storage_dir: Optional[Path] = None):
        self.zot = client
        self.storage_dir = storage_dir

    @classmethod
    def from_config(cls, config: ReviewConfig) -> "ZoteroItemStore":
        if not config.zotero_library_id or not config.zotero_api_key:
            raise ConfigurationError("ZOTERO_LIBRARY_ID and ZOTERO_API_KEY must be set")
        client = zotero.Zotero(config.zotero_library_id, config.zotero_library_type, config.zotero_api_key)
        return cls(client, storage_dir=config.zotero_storage_dir)

    # ------ conversions ------
    @staticmethod
    def _to_source(item: dict) -> Source:
        data = item.get("data", item)
        creators = [
            Creator(
                last_name=c.get("lastName", ""),
                first_name=c.get("firstName", ""),
                name=c.get("name", ""),
            )
            for c in data.get("creators", [])
        ]
        return Source(
            id=data["key"],
            key=data["key"],
            title=data.get("title", ""),
            creators=creators,
            date=data.get("date", ""),
            library_id=str(item.get("library", {}).get("id", "")) or None,
        )

    @staticmethod
    def _to_note(item: dict) -> Note:
        data = item.get("data", item)
        return Note(
            id=data["key"],
            key=data["key"],
            html=data.get("note", ""),
            parent_id=data.get("parentItem"),
            tags=_tags(data),
        )

    @staticmethod
    def _to_attachment(item: dict) -> Attachment:
        data = item.get("data", item)
        path = data.get("path")
        return Attachment(
            id=data["key"],
            key=data["key"],
            parent_id=data.get("parentItem"),
            title=data.get("title", ""),
            path=Path(path) if path and data.get("linkMode") == "linked_file" else None,
            content_type=data.get("contentType", ""),
        )

    def attachment_from_item(self, item: dict) -> Attachment:
        """Attachment for an item dict, resolving the local storage path."""
        attachment = self._to_attachment(item)
        data = item.get("data", item)
        if attachment.path is None and self.storage_dir and data.get("filename"):
            attachment.path = self.storage_dir / attachment.key / data["filename"]
        return attachment

    # ------ reads ------
    def get_source(self, source_id) -> Optional[Source]:
        try:
            return self._to_source(self.zot.item(source_id))
        except zotero_errors.ResourceNotFound:
            return None

    def child_notes(self, source: Source) -> list:
        children = self.zot.children(source.key)
        return [self._to_note(c) for c in children if c["data"].get("itemType") == "note"]

    def get_tags(self, item_id) -> list:
        return _tags(self.zot.item(item_id)["data"])

    def pdf_attachments(self, source: Source) -> list:
        children = self.zot.children(source.key)
        return [
            self.attachment_from_item(c)
            for c in children
            if c["data"].get("itemType") == "attachment"
            and c["data"].get("contentType") == "application/pdf"
        ]

    def collection_pdf_attachments(self, collection_key: str) -> list:
        """PDF attachments of every top-level item in a collection."""
        attachments = []
        for item in self.zot.everything(self.zot.collection_items_top(collection_key)):
            if item["data"].get("itemType") in ("note", "attachment"):
                continue
            attachments.extend(self.pdf_attachments(self._to_source(item)))
        return attachments

    def attachment_path(self, attachment: Attachment) -> Optional[Path]:
        return attachment.path

    def read_attachment(self, attachment: Attachment) -> bytes:
        if attachment.path is not None and attachment.path.exists():
            return attachment.path.read_bytes()
        try:
            return self.zot.file(attachment.key)
        except (zotero_errors.PyZoteroError, httpx.HTTPError) as exc:
            raise OSError(f"Could not download attachment {attachment.key}: {exc}") from exc

    def fulltext(self, attachment: Attachment) -> str:
        try:
            payload = self.zot.fulltext_item(attachment.key)
        except (zotero_errors.PyZoteroError, httpx.HTTPError) as exc:
            logger.debug("No indexed full text for %s: %s", attachment.key, exc)
            return ""
        return (payload or {}).get("content", "") or ""

    # ------ writes ------
    def create_child_note(self, source: Source, html: str, tags: list) -> Note:
        payload = self.zot.item_template("note")
        payload["note"] = html
        payload["parentItem"] = source.key
        payload["tags"] = [{"tag": t} for t in tags]
        key = _created_key(self.zot.create_items([payload]))
        return Note(id=key, key=key, html=html, parent_id=source.key, tags=list(tags))

    def create_standalone_note(self, collection_id, html: str, tags: list) -> Note:
        payload = self.zot.item_template("note")
        payload["note"] = html
        payload["tags"] = [{"tag": t} for t in tags]
        payload["collections"] = [collection_id]
        key = _created_key(self.zot.create_items([payload]))
        return Note(id=key, key=key, html=html, tags=list(tags))

    def add_tag(self, item_id, tag: str) -> None:
        item = self.zot.item(item_id)
        if tag in _tags(item["data"]):
            return
        self.zot.add_tags(item, tag)

    def create_report(self, collection_id, title: str) -> Source:
        payload = self.zot.item_template("report")
        payload["title"] = title
        payload["collections"] = [collection_id]
        key = _created_key(self.zot.create_items([payload]))
        return Source(id=key, key=key, title=title)

    def link_attachment(self, parent_id, path: Path, title: str) -> Attachment:
        payload = self.zot.item_template("attachment", "linked_file")
        payload["title"] = title
        payload["path"] = str(path)
        payload["contentType"] = "application/pdf"
        payload["parentItem"] = parent_id
        key = _created_key(self.zot.create_items([payload]))
        return Attachment(id=key, key=key, parent_id=parent_id, title=title, path=Path(path))
