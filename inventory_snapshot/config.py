"""Defaults for field names, archive policy, and collection naming."""

from __future__ import annotations

from dataclasses import dataclass

SNAPSHOT_VERSION = "1.0.0"
REPORT_DETAIL_LIMIT = 10

# Keys that only exist inside an encoded TemporalValue.
TEMPORAL_BOOKKEEPING_FIELDS = frozenset({"_type", "seconds", "nanoseconds", "dateString"})

# (label, lower bound inclusive, upper bound exclusive or None)
AGE_BUCKETS: tuple[tuple[str, int, int | None], ...] = (
    ("60-90 days", 60, 90),
    ("90-120 days", 90, 120),
    ("120-180 days", 120, 180),
    ("180+ days", 180, None),
)

TEST_COLLECTION_SUFFIX = "_test"


@dataclass(frozen=True, slots=True)
class InventorySchema:
    """Names of the inventory fields the engine reads."""

    status: str = "status"
    manufacturer: str = "manufacturer"
    retail_price: str = "retailPrice"
    dealers_price: str = "dealersPrice"
    date_added: str = "dateAdded"
    last_updated: str = "lastUpdated"
    label: str = "model"
    supplier_fields: tuple[str, ...] = ("supplier", "supplierId")


@dataclass(frozen=True, slots=True)
class ArchivePolicy:
    """Retention rule and write-batch limits for archiving."""

    status_filter: str = "Sold"
    age_threshold_days: int = 60
    max_batch_bytes: int = 700 * 1024
    near_capacity_ratio: float = 0.8

    @property
    def max_batch_kb(self) -> float:
        return self.max_batch_bytes / 1024


@dataclass(frozen=True, slots=True)
class CollectionNames:
    """Source inventory collection and its archive destination."""

    inventory: str = "inventory"
    archives: str = "inventory_archives"

    def for_mode(self, test_mode: bool) -> CollectionNames:
        """Return the rehearsal collections when `test_mode` is set."""

        if not test_mode:
            return self
        return CollectionNames(
            inventory=f"{self.inventory}{TEST_COLLECTION_SUFFIX}",
            archives=f"{self.archives}{TEST_COLLECTION_SUFFIX}",
        )


DEFAULT_SCHEMA = InventorySchema()
DEFAULT_POLICY = ArchivePolicy()
DEFAULT_COLLECTIONS = CollectionNames()
