"""
Library Mirror - Catalog Store
JSON record of every book seen on the library lists (books/db.json)

Layout:
    { "guides": [...], "saved": [CatalogItem...], "finished": [CatalogItem...] }

Each list is ordered by discovery, oldest first. Entries are only ever
appended; the store is the single source of truth for "already known".
"""

import json
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List

from catalog.models import CatalogItem, LIST_NAMES
from core.errors import HardAssertionError
from core.fileio import write_json_atomic
from core.logger import log_info, log_warning, log_error


class CatalogStore:
    """
    In-memory catalog with atomic persistence.

    One store is created per run and passed to the components that need
    it. There is a single writer, so no locking is done.
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        self._lists: Dict[str, List[CatalogItem]] = {name: [] for name in LIST_NAMES}
        # Lists we don't manage are written back untouched
        self._guides: List[Any] = []

    @classmethod
    @contextmanager
    def open(cls, path: Path) -> Iterator["CatalogStore"]:
        """
        Load the store and always persist it when the block exits.

        The final persist runs on success, on handled failures and on
        KeyboardInterrupt; only a killed process skips it.
        """
        store = cls(path)
        store.load()
        try:
            yield store
        finally:
            try:
                store.persist()
            except OSError as e:
                log_error(f"Failed to persist catalog on exit: {e}")

    def load(self) -> None:
        """Read the catalog file. A missing file means an empty catalog."""
        if not self.path.exists():
            log_info(f"No catalog at {self.path}, starting empty", prefix="📒")
            return

        with open(self.path, "r", encoding="utf-8") as f:
            data = json.load(f)

        self._guides = list(data.get("guides", []))
        for name in LIST_NAMES:
            self._lists[name] = []
            self._append_unique(name, (CatalogItem.from_dict(d) for d in data.get(name, [])))

        counts = ", ".join(f"{name}={len(self._lists[name])}" for name in LIST_NAMES)
        log_info(f"Loaded catalog ({counts})", prefix="📒")

    def _check_list(self, list_name: str) -> List[CatalogItem]:
        if list_name not in self._lists:
            raise HardAssertionError(f"Unknown library list: {list_name}")
        return self._lists[list_name]

    def get(self, list_name: str) -> List[CatalogItem]:
        """Items of a list, oldest discovery first."""
        return list(self._check_list(list_name))

    def ids(self, list_name: str) -> List[str]:
        return [item.id for item in self._check_list(list_name)]

    def contains(self, list_name: str, item_id: str) -> bool:
        return any(item.id == item_id for item in self._check_list(list_name))

    def _append_unique(self, list_name: str, items: Iterable[CatalogItem]) -> int:
        target = self._lists[list_name]
        seen = {item.id for item in target}
        added = 0
        for item in items:
            if item.id in seen:
                log_warning(f"Ignoring duplicate id in {list_name}: {item.id}")
                continue
            seen.add(item.id)
            target.append(item)
            added += 1
        return added

    def append(self, list_name: str, items: Iterable[CatalogItem]) -> int:
        """
        Append items to a list in the given order.

        Ids already in the list, or repeated within the batch, are dropped.

        Returns:
            Number of items actually appended
        """
        self._check_list(list_name)
        return self._append_unique(list_name, items)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"guides": list(self._guides)}
        for name in LIST_NAMES:
            data[name] = [item.to_dict() for item in self._lists[name]]
        return data

    def persist(self) -> None:
        """Write the whole catalog atomically."""
        write_json_atomic(self.path, self.to_dict())
