"""
Attachment blob storage.

Log attachments are stored as files under ``ATTACHMENT_ROOT`` and referenced
from HistoryLogAttachment rows by a relative ``file_path``.  The services
only save and remove by path; content is never inspected.

Usage:
    from fabtrack.services.attachment_storage import get_storage

    get_storage().save("projects/3/drawing.pdf", data)
    get_storage().remove(["projects/3/drawing.pdf"])
"""

import logging
import os

from flask import current_app

logger = logging.getLogger(__name__)


class LocalAttachmentStorage:
    """Filesystem-backed storage rooted at a single directory."""

    def __init__(self, root: str):
        self.root = os.path.abspath(root)

    def _resolve(self, path: str) -> str:
        full = os.path.abspath(os.path.join(self.root, path))
        if os.path.commonpath([self.root, full]) != self.root:
            raise ValueError(f"Attachment path escapes storage root: {path!r}")
        return full

    def save(self, path: str, data: bytes) -> str:
        full = self._resolve(path)
        os.makedirs(os.path.dirname(full), exist_ok=True)
        with open(full, "wb") as fh:
            fh.write(data)
        return path

    def exists(self, path: str) -> bool:
        return os.path.isfile(self._resolve(path))

    def remove(self, paths) -> int:
        """Delete blobs; missing files are skipped. Returns the number removed."""
        removed = 0
        for path in paths:
            full = self._resolve(path)
            try:
                os.remove(full)
                removed += 1
            except FileNotFoundError:
                logger.debug("Attachment already gone: %s", path)
        if removed:
            logger.info("Removed %d attachment blob(s)", removed)
        return removed


def get_storage() -> LocalAttachmentStorage:
    """Storage for the current app."""
    return LocalAttachmentStorage(current_app.config["ATTACHMENT_ROOT"])
