"""
invoiceflow/storage.py

File-store collaborator boundary.

The workflow core never reads or writes file bytes. It only stores references (paths)
and, on hard delete, asks the store to remove them after the database commit.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, Protocol

from flask import current_app

logger = logging.getLogger(__name__)


class FileStore(Protocol):
    def delete(self, stored_path: str) -> None: ...


class LocalFileStore:
    """Files kept under a root folder on local disk."""

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root).resolve()

    def resolve(self, stored_path: str) -> Path:
        path = Path(stored_path)
        if not path.is_absolute():
            path = self.root / path
        path = path.resolve()
        if path != self.root and self.root not in path.parents:
            raise ValueError(f"Path '{stored_path}' escapes the upload folder")
        return path

    def delete(self, stored_path: str) -> None:
        self.resolve(stored_path).unlink(missing_ok=True)


def get_file_store() -> LocalFileStore:
    return LocalFileStore(current_app.config["UPLOAD_FOLDER"])


def delete_files(store: FileStore, stored_paths: Iterable[str]) -> list[str]:
    """
    Delete every path, logging failures instead of raising.

    Returns the paths that could not be removed.
    """
    failed: list[str] = []
    for stored_path in stored_paths:
        try:
            store.delete(stored_path)
        except (OSError, ValueError):
            logger.exception("Could not delete stored file %s", stored_path)
            failed.append(stored_path)
    return failed
