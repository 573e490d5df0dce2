from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, List, Mapping, Optional


def parse_timestamp(raw: Optional[str]) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp as returned by the backend, or None."""
    if not raw:
        return None
    text = raw.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        return None


@dataclass
class Group:
    """
    A top-level named container, as stored in the ``groups`` table.

    Identifiers and creation timestamps are assigned by the backend;
    the client never invents them.
    """

    #: Backend-assigned identifier (a UUID string in practice).
    id: str

    #: Display name, exactly as typed by the user.
    name: str

    #: Id of the owning user. Stored as ``user_id`` on the wire.
    owner_id: Optional[str] = None

    #: Raw creation timestamp string as returned by the backend. Kept
    #: so the value can be shown even if parsing fails.
    created_at_raw: Optional[str] = None

    #: Parsed ``created_at_raw``, if parsing succeeded.
    created_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Group":
        """Build a Group from a backend row. Raises KeyError if ``id`` or ``name`` is missing."""
        raw = row.get("created_at")
        return cls(
            id=str(row["id"]),
            name=str(row["name"]),
            owner_id=row.get("user_id"),
            created_at_raw=raw,
            created_at=parse_timestamp(raw),
        )


@dataclass
class Subgroup:
    """A named container nested under exactly one Group."""

    id: str
    name: str

    #: Parent reference: the id of the owning Group.
    group_id: str

    owner_id: Optional[str] = None
    created_at_raw: Optional[str] = None
    created_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Subgroup":
        raw = row.get("created_at")
        return cls(
            id=str(row["id"]),
            name=str(row["name"]),
            group_id=str(row["group_id"]),
            owner_id=row.get("user_id"),
            created_at_raw=raw,
            created_at=parse_timestamp(raw),
        )


@dataclass
class FileEntry:
    """A named external link nested under exactly one Subgroup."""

    id: str
    name: str

    #: External URI the entry points at. Never fetched by the client;
    #: it is only opened in the browser or copied to the clipboard.
    link: str

    #: Parent reference: the id of the owning Subgroup.
    subgroup_id: str

    owner_id: Optional[str] = None
    created_at_raw: Optional[str] = None
    created_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "FileEntry":
        raw = row.get("created_at")
        return cls(
            id=str(row["id"]),
            name=str(row["name"]),
            link=str(row["link"]),
            subgroup_id=str(row["subgroup_id"]),
            owner_id=row.get("user_id"),
            created_at_raw=raw,
            created_at=parse_timestamp(raw),
        )


@dataclass
class SubgroupNode:
    """
    A Subgroup as held in the in-memory hierarchy.

    The ``record`` part mirrors the backend row. ``files`` and
    ``expanded`` are local view state and are never written back.
    """

    record: Subgroup
    files: List[FileEntry] = field(default_factory=list)
    expanded: bool = True

    @property
    def id(self) -> str:
        """Convenience alias for ``self.record.id``."""
        return self.record.id

    @property
    def name(self) -> str:
        """Convenience alias for ``self.record.name``."""
        return self.record.name

    @property
    def group_id(self) -> str:
        return self.record.group_id


@dataclass
class GroupNode:
    """A Group together with its nested subgroups and expansion flag."""

    record: Group
    subgroups: List[SubgroupNode] = field(default_factory=list)
    expanded: bool = True

    @property
    def id(self) -> str:
        """Convenience alias for ``self.record.id``."""
        return self.record.id

    @property
    def name(self) -> str:
        """Convenience alias for ``self.record.name``."""
        return self.record.name


# The whole tree: top-level groups in creation order.
Hierarchy = List[GroupNode]
