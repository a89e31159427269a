"""
JSON Object Store for blockcrack.

The whole database is one JSON document, loaded at the start of a run
and saved at the end (or earlier, whenever a checkpoint is needed):

    {
        "<namespace>": {
            "<kind>:<id>": { ...object... },
            ...
        }
    }

Objects are instances of classes exposing:
    KEY_NAME    — the kind, e.g. "domain" or "blocklist"
    get_id()    — the object's id within its kind
    to_dict()   — JSON-compatible representation
    from_dict() — classmethod rebuilding the object

The ":" separator is reserved; kinds and ids containing it are refused.
The store is single-writer. A FileLock next to the database file keeps
two processes from interleaving a load and a save.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Iterator, Optional, Type, TypeVar

from filelock import FileLock

from ..domain import ValidationError

logger = logging.getLogger(__name__)

KEY_SEPARATOR = ":"

T = TypeVar("T")


class StoreError(Exception):
    """Raised when the database cannot be read, written or addressed."""
    pass


def make_object_key(kind: str, object_id: str) -> str:
    """
    Build the composite "<kind>:<id>" key.

    Raises:
        StoreError: If either part contains the reserved separator
    """
    if not kind or KEY_SEPARATOR in kind:
        raise StoreError(f"Invalid object kind: {kind!r}")
    if KEY_SEPARATOR in object_id:
        raise StoreError(
            f"Object id {object_id!r} contains reserved separator {KEY_SEPARATOR!r}"
        )
    return f"{kind}{KEY_SEPARATOR}{object_id}"


def _lock_for(path: Path) -> FileLock:
    return FileLock(str(path) + ".lock")


# =============================================================================
# STORE
# =============================================================================

class ObjectStore:
    """
    An in-memory copy of the database document.

    Create with ObjectStore() for an empty store or ObjectStore.load(path)
    to read an existing file. Nothing touches disk until save().
    """

    def __init__(
        self,
        content: Optional[dict[str, dict[str, Any]]] = None,
        path: Optional[Path | str] = None,
    ):
        self.content: dict[str, dict[str, Any]] = content if content is not None else {}
        self.path = Path(path) if path is not None else None

    @classmethod
    def load(cls, path: Path | str) -> ObjectStore:
        """
        Load the database file; a missing file gives an empty store.

        Raises:
            StoreError: If the file exists but is not a valid database
        """
        path = Path(path)
        if not path.parent.is_dir():
            logger.info("No database at %s, starting empty", path)
            return cls(path=path)

        with _lock_for(path):
            if not path.exists():
                logger.info("No database at %s, starting empty", path)
                return cls(path=path)
            try:
                with path.open("r", encoding="utf-8") as handle:
                    content = json.load(handle)
            except (OSError, json.JSONDecodeError) as e:
                raise StoreError(f"Cannot read database {path}: {e}") from e

        if not isinstance(content, dict) or not all(
            isinstance(v, dict) for v in content.values()
        ):
            raise StoreError(f"Database {path} is not a namespace mapping")

        return cls(content=content, path=path)

    def save(self, path: Optional[Path | str] = None) -> None:
        """
        Write the whole document atomically.

        The data goes to a temporary file in the same directory, which
        then replaces the database in one rename.
        """
        target = Path(path) if path is not None else self.path
        if target is None:
            raise StoreError("No path to save the database to")

        target.parent.mkdir(parents=True, exist_ok=True)
        with _lock_for(target):
            fd, tmp_name = tempfile.mkstemp(
                prefix=target.name + ".", suffix=".tmp", dir=target.parent
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as handle:
                    json.dump(self.content, handle, indent=2, sort_keys=True)
                    handle.write("\n")
                os.replace(tmp_name, target)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise

        logger.debug("Saved database to %s", target)

    def use_namespace(self, namespace: str) -> NamespaceView:
        """Return a view scoped to one namespace, creating it if needed."""
        self.content.setdefault(namespace, {})
        return NamespaceView(self, namespace)


class NamespaceView:
    """Typed access to the objects of one namespace."""

    def __init__(self, store: ObjectStore, namespace: str):
        self.store = store
        self.namespace = namespace

    @property
    def _objects(self) -> dict[str, Any]:
        return self.store.content[self.namespace]

    def get(self, kind: Type[T], object_id: str) -> Optional[T]:
        """
        Return the object of this kind and id, or None.

        Raises:
            StoreError: If the stored object cannot be decoded
        """
        key = make_object_key(kind.KEY_NAME, object_id)
        raw = self._objects.get(key)
        if raw is None:
            return None
        try:
            return kind.from_dict(raw)
        except (KeyError, TypeError, ValueError, AttributeError, ValidationError) as e:
            raise StoreError(
                f"Damaged object {key!r} in namespace {self.namespace!r}: {e!r}"
            ) from e

    def set(self, obj: Any) -> bool:
        """Insert or replace an object. Returns True if it already existed."""
        key = make_object_key(obj.KEY_NAME, obj.get_id())
        existed = key in self._objects
        self._objects[key] = obj.to_dict()
        return existed

    def iter_ids(self, kind: type) -> Iterator[str]:
        """Yield the ids of every object of this kind, sorted."""
        prefix = kind.KEY_NAME + KEY_SEPARATOR
        for key in sorted(self._objects):
            if key.startswith(prefix):
                yield key[len(prefix):]

    def iter_objects(self, kind: Type[T]) -> Iterator[T]:
        for object_id in list(self.iter_ids(kind)):
            obj = self.get(kind, object_id)
            if obj is not None:
                yield obj

    def save(self) -> None:
        """Persist the whole store (all namespaces)."""
        self.store.save()
