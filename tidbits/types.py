"""
Data types for knowledge entries.
"""

import logging
import math
import re
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterator, Optional
from urllib.parse import urlparse

from .errors import DataError

logger = logging.getLogger(__name__)

# Tags: letters, digits and hyphen only (they are space-joined in storage)
_TAG_RE = re.compile(r'^[a-zA-Z0-9-]+$')

TAG_SEPARATOR = " "

MEDIA_CATEGORY = "media"

# File extensions accepted as a media type hint
MEDIA_EXTENSIONS = (
    "apng", "avif", "csv", "gif", "jpeg",
    "mp4", "pdf", "png", "svg", "tar.gz",
    "txt", "webp", "yaml", "zip",
)

DEFAULT_LIMIT = 5
MAX_LIMIT = 100


class EntryState(Enum):
    """Lifecycle of a submitted entry, from construction to remote commit."""
    PENDING = "pending"
    VALIDATED = "validated"
    COMMITTED = "committed"
    REJECTED = "rejected"
    BUFFERED = "buffered"
    FAILED_REPLAY = "failed_replay"


def is_blank(value: Optional[str]) -> bool:
    """True for None, empty, or whitespace-only strings."""
    return value is None or not value.strip()


def is_valid_tag(tag: str) -> bool:
    return bool(_TAG_RE.match(tag))


def is_web_url(value: str) -> bool:
    """Check whether value is an absolute http(s) address with a host."""
    try:
        parsed = urlparse(value)
    except ValueError:
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def join_tags(tags: list[str]) -> str:
    return TAG_SEPARATOR.join(tags)


def split_tags(tag_values: str) -> list[str]:
    return [t for t in tag_values.split(TAG_SEPARATOR) if t]


def _collect_violations(
    key: str,
    value: str,
    category: str,
    namespace: str,
    tags: list[str],
) -> list[str]:
    """Return every rule the given fields break, in a stable order."""
    violations = []
    if is_blank(key):
        violations.append("entry key is empty")
    if is_blank(value):
        violations.append("entry value is empty")
    if is_blank(category):
        violations.append("entry category is empty")
    if is_blank(namespace):
        violations.append("entry namespace is empty")
    if not tags:
        violations.append("entry tags is empty")
    for tag in tags:
        if not is_valid_tag(tag):
            violations.append(
                f"entry tag {tag!r} must contain only letters, digits or hyphens"
            )
    return violations


def _raise_if_invalid(violations: list[str]) -> None:
    if violations:
        raise DataError(
            "the given values are not valid: " + "; ".join(violations),
            violations=violations,
        )


@dataclass
class Entry:
    """
    A stored knowledge entry.

    ``id`` is generated once when the entry is created. ``key`` is the
    human-chosen handle and is unique across the store.
    """
    id: str
    key: str
    value: str
    category: str
    namespace: str
    tags: list[str] = field(default_factory=list)
    notes: str = ""
    reference: str = ""
    media_type: str = ""

    def validate(self) -> None:
        """Raise DataError listing every violated field rule."""
        _raise_if_invalid(_collect_violations(
            self.key, self.value, self.category, self.namespace, self.tags,
        ))

    @property
    def tag_values(self) -> str:
        """Tags as stored and indexed: a single space-joined string."""
        return join_tags(self.tags)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "key": self.key,
            "value": self.value,
            "notes": self.notes,
            "category": self.category,
            "reference": self.reference,
            "media_type": self.media_type,
            "namespace": self.namespace,
            "tags": list(self.tags),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Entry":
        return cls(
            id=str(data.get("id") or ""),
            key=data.get("key") or "",
            value=data.get("value") or "",
            category=data.get("category") or "",
            namespace=data.get("namespace") or "",
            tags=list(data.get("tags") or []),
            notes=data.get("notes") or "",
            reference=data.get("reference") or "",
            media_type=data.get("media_type") or "",
        )

    def to_new_entry(self) -> "NewEntry":
        """Drop the id, e.g. to export in sync log format."""
        return NewEntry(
            key=self.key,
            value=self.value,
            category=self.category,
            namespace=self.namespace,
            tags=list(self.tags),
            notes=self.notes,
            reference=self.reference,
            media_type=self.media_type,
        )

    def __str__(self) -> str:
        return (
            f"ID: {self.id}\n"
            f"Key: {self.key}\n"
            f"Value: {self.value}\n"
            f"Notes: {self.notes}\n"
            f"Category: {self.category}\n"
            f"Reference: {self.reference}\n"
            f"Namespace: {self.namespace}\n"
            f"Tags: {self.tags}\n"
        )


@dataclass
class NewEntry:
    """
    An entry as submitted, before it has an id.

    This is the shape sent to the remote service and written to the
    sync queue. Field order here follows the sync log document layout.
    """
    key: str
    value: str
    category: str
    namespace: str
    tags: list[str] = field(default_factory=list)
    notes: str = ""
    reference: str = ""
    media_type: str = ""

    def validate(self) -> None:
        """Raise DataError listing every violated field rule."""
        _raise_if_invalid(_collect_violations(
            self.key, self.value, self.category, self.namespace, self.tags,
        ))

    def to_entry(self) -> Entry:
        """Assign a fresh id and normalize the case of lookup fields."""
        return Entry(
            id=str(uuid.uuid4()),
            key=self.key.lower(),
            value=self.value,
            category=self.category.lower(),
            namespace=self.namespace.lower(),
            tags=list(self.tags),
            notes=self.notes,
            reference=self.reference,
            media_type=self.media_type,
        )

    def to_dict(self) -> dict[str, Any]:
        """JSON body for the remote create call."""
        data: dict[str, Any] = {
            "key": self.key,
            "value": self.value,
            "notes": self.notes,
            "category": self.category,
            "namespace": self.namespace,
            "tags": list(self.tags),
        }
        if self.reference:
            data["reference"] = self.reference
        if self.media_type:
            data["media_type"] = self.media_type
        return data

    def to_document(self) -> dict[str, Any]:
        """Mapping written as one sync log document."""
        return {
            "Key": self.key,
            "Value": self.value,
            "Notes": self.notes,
            "Category": self.category,
            "Reference": self.reference,
            "Namespace": self.namespace,
            "MediaType": self.media_type,
            "Tags": list(self.tags),
        }

    @classmethod
    def from_document(cls, doc: dict[str, Any]) -> "NewEntry":
        """Build from a sync log document. Missing fields become empty."""
        tags = doc.get("Tags") or []
        if isinstance(tags, str):
            tags = split_tags(tags)
        return cls(
            key=str(doc.get("Key") or ""),
            value=str(doc.get("Value") or ""),
            category=str(doc.get("Category") or ""),
            namespace=str(doc.get("Namespace") or ""),
            tags=[str(t) for t in tags],
            notes=str(doc.get("Notes") or ""),
            reference=str(doc.get("Reference") or ""),
            media_type=str(doc.get("MediaType") or ""),
        )


@dataclass
class EntryItem:
    """Search projection of an entry."""
    id: str
    key: str
    category: str
    namespace: str
    tags: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "key": self.key,
            "category": self.category,
            "namespace": self.namespace,
            "tags": list(self.tags),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "EntryItem":
        return cls(
            id=str(data.get("id") or ""),
            key=data.get("key") or "",
            category=data.get("category") or "",
            namespace=data.get("namespace") or "",
            tags=list(data.get("tags") or []),
        )


@dataclass
class QueryFilter:
    """
    Search and listing criteria.

    At least one of key, keyword, category or namespace must be set for a
    search to run. ``limit`` bounds the page size (1-100) and ``offset``
    skips rows before the page starts.
    """
    key: str = ""
    keyword: str = ""
    category: str = ""
    namespace: str = ""
    limit: int = DEFAULT_LIMIT
    offset: int = 0

    def nothing_to_look_for(self) -> bool:
        return (
            is_blank(self.key)
            and is_blank(self.keyword)
            and is_blank(self.category)
            and is_blank(self.namespace)
        )

    def validate(self) -> None:
        violations = []
        if self.limit < 1:
            violations.append("minimum number of records to retrieve is 1")
        if self.limit > MAX_LIMIT:
            violations.append(
                f"invalid limit number, maximum should be {MAX_LIMIT}"
            )
        if self.offset < 0:
            violations.append("offset must not be negative")
        if violations:
            raise DataError(
                "invalid filter values: " + "; ".join(violations),
                violations=violations,
            )

    def to_params(self) -> dict[str, Any]:
        """Query string parameters for the remote search endpoint."""
        return {
            "key": self.key,
            "keyword": self.keyword,
            "category": self.category,
            "namespace": self.namespace,
            "limit": self.limit,
            "offset": self.offset,
        }


def _total_pages(total: int, limit: int) -> int:
    if limit <= 0:
        return 0
    return math.ceil(total / limit)


@dataclass
class SearchResult:
    """A page of entry projections plus the unpaginated match count."""
    items: list[EntryItem] = field(default_factory=list)
    total: int = 0
    limit: int = DEFAULT_LIMIT
    offset: int = 0

    def keys(self) -> Iterator[str]:
        for item in self.items:
            yield item.key

    def total_pages(self) -> int:
        return _total_pages(self.total, self.limit)

    def to_dict(self) -> dict[str, Any]:
        return {
            "items": [i.to_dict() for i in self.items],
            "total": self.total,
            "limit": self.limit,
            "offset": self.offset,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SearchResult":
        return cls(
            items=[EntryItem.from_dict(i) for i in data.get("items") or []],
            total=int(data.get("total") or 0),
            limit=int(data.get("limit") or DEFAULT_LIMIT),
            offset=int(data.get("offset") or 0),
        )


@dataclass
class ListResult:
    """A page of full entries plus the unpaginated match count."""
    items: list[Entry] = field(default_factory=list)
    total: int = 0
    limit: int = DEFAULT_LIMIT
    offset: int = 0

    def total_pages(self) -> int:
        return _total_pages(self.total, self.limit)

    def to_dict(self) -> dict[str, Any]:
        return {
            "items": [e.to_dict() for e in self.items],
            "total": self.total,
            "limit": self.limit,
            "offset": self.offset,
        }


@dataclass
class BatchResult:
    """
    Per-key outcome of an import or sync run.

    Each key has exactly one outcome. When a batch repeats a key, the
    later outcome replaces the earlier one and the replacement is logged.
    """
    new_ids: dict[str, str] = field(default_factory=dict)
    failed_keys: dict[str, str] = field(default_factory=dict)

    def _forget(self, key: str) -> None:
        if key in self.new_ids or key in self.failed_keys:
            logger.warning("Duplicate key %r in batch, keeping the last outcome", key)
        self.new_ids.pop(key, None)
        self.failed_keys.pop(key, None)

    def add_success(self, key: str, id: str) -> None:
        self._forget(key)
        self.new_ids[key] = id

    def add_failure(self, key: str, message: str) -> None:
        self._forget(key)
        self.failed_keys[key] = message

    def ok(self) -> bool:
        return not self.failed_keys and bool(self.new_ids)

    def any_error(self) -> bool:
        return bool(self.failed_keys)

    def empty(self) -> bool:
        return not self.failed_keys and not self.new_ids

    def to_dict(self) -> dict[str, Any]:
        return {"ids": dict(self.new_ids), "failed_keys": dict(self.failed_keys)}
