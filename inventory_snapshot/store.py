"""Record store interface plus in-memory and JSON-directory implementations."""

from __future__ import annotations

import copy
import json
import logging
from collections.abc import Callable
from pathlib import Path
from typing import Any, Protocol

from .codec import encode_value
from .errors import SourceUnavailable
from .models import Fields, Record
from .normalize import normalize_fields

logger = logging.getLogger(__name__)


class RecordStore(Protocol):
    """Keyed document store consumed by export, reconciliation, and archiving."""

    def fetch_all(self, collection: str) -> list[Record]:
        ...

    def put(self, collection: str, record_id: str, fields: Fields) -> None:
        ...

    def delete(self, collection: str, record_id: str) -> None:
        ...


class InMemoryRecordStore:
    """Dict-backed store; collections keep insertion order."""

    def __init__(self, collections: dict[str, dict[str, Fields]] | None = None):
        self._collections: dict[str, dict[str, Fields]] = {}
        for name, documents in (collections or {}).items():
            self._collections[name] = {record_id: dict(fields) for record_id, fields in documents.items()}

    def fetch_all(self, collection: str) -> list[Record]:
        documents = self._collections.get(collection, {})
        return [Record(id=record_id, fields=copy.deepcopy(fields)) for record_id, fields in documents.items()]

    def put(self, collection: str, record_id: str, fields: Fields) -> None:
        self._collections.setdefault(collection, {})[record_id] = copy.deepcopy(fields)

    def delete(self, collection: str, record_id: str) -> None:
        self._collections.get(collection, {}).pop(record_id, None)

    def collection_ids(self, collection: str) -> list[str]:
        """Return the ids currently stored in `collection`."""

        return list(self._collections.get(collection, {}))


class JsonDirectoryStore:
    """Store that keeps each collection as `<root>/<collection>.json`.

    Each file holds `{record_id: fields}`. Temporal values use the snapshot
    artifact encoding and are decoded on read.
    """

    def __init__(self, root: str | Path):
        self.root = Path(root)

    def _path(self, collection: str) -> Path:
        return self.root / f"{collection}.json"

    def _read(self, collection: str) -> dict[str, Any]:
        path = self._path(collection)
        if not path.exists():
            return {}
        payload = json.loads(path.read_text(encoding="utf-8"))
        if not isinstance(payload, dict):
            raise ValueError(f"Collection file {path} must contain a JSON object")
        return payload

    def _write(self, collection: str, payload: dict[str, Any]) -> None:
        path = self._path(collection)
        path.parent.mkdir(parents=True, exist_ok=True)
        encoded = {record_id: encode_value(fields) for record_id, fields in payload.items()}
        path.write_text(json.dumps(encoded, indent=2) + "\n", encoding="utf-8")

    def fetch_all(self, collection: str) -> list[Record]:
        payload = self._read(collection)
        return [Record(id=str(record_id), fields=normalize_fields(fields)) for record_id, fields in payload.items()]

    def put(self, collection: str, record_id: str, fields: Fields) -> None:
        payload = self._read(collection)
        payload[record_id] = fields
        self._write(collection, payload)

    def delete(self, collection: str, record_id: str) -> None:
        payload = self._read(collection)
        if payload.pop(record_id, None) is not None:
            self._write(collection, payload)


def fetch_collection(store: RecordStore, collection: str) -> list[Record]:
    """Fetch a whole collection, converting any store failure to `SourceUnavailable`."""

    try:
        records = store.fetch_all(collection)
    except Exception as exc:
        logger.error("Fetching collection %s failed: %s", collection, exc)
        raise SourceUnavailable(f"Unable to fetch collection {collection!r}: {exc}", collection=collection) from exc
    logger.debug("Fetched %d records from %s", len(records), collection)
    return records


def build_lookup(store: RecordStore, collection: str, name_field: str = "name") -> Callable[[str], str | None]:
    """Return an id -> display-name resolver backed by one fetch of `collection`."""

    names: dict[str, str] = {}
    for record in fetch_collection(store, collection):
        name = record.get(name_field)
        if isinstance(name, str) and name:
            names[record.id] = name
    return names.get
