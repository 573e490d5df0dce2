"""
In-memory Group → Subgroup → FileEntry tree with local patching.

Design overview
---------------
The store holds the full three-level tree for the signed-in user plus
the view's selection (selected group, selected subgroup). It is filled
once per session by :meth:`HierarchyStore.load_all` and afterwards kept
current by patching it locally after each *confirmed* remote mutation:

* creates append the record returned by the backend under its parent;
* deletes remove the node, taking any nested children with it.

There is no refetch after a mutation and no conflict detection; edits
made concurrently from another session only show up on the next
``load_all``. Newly created items are appended, never re-sorted, on the
assumption that backend timestamps increase per insert.

Every operation first checks ``context.is_connected`` and does nothing
when the backend is known to be unreachable. A failed remote call
leaves the tree as it was, sets the sticky ``context.error`` message,
re-checks connectivity, and reports a transient message through the
notifier. Validation failures (blank names or links) are silent.

Listeners registered with :meth:`HierarchyStore.add_listener` are
called after every change to the tree, the selection, or the context
flags the view renders.
"""
from __future__ import annotations

import logging
from typing import Callable, List, Optional

from linkrepo.core.app_context import AppContext
from linkrepo.core.hierarchy_index import build_hierarchy, count_nodes
from linkrepo.core.models import (
    FileEntry,
    Group,
    GroupNode,
    Hierarchy,
    Subgroup,
    SubgroupNode,
)
from linkrepo.core.remote_service import RemoteDataService, RemoteServiceError

log = logging.getLogger(__name__)

GROUPS_TABLE = "groups"
SUBGROUPS_TABLE = "subgroups"
FILES_TABLE = "files"

# Notifier levels.
INFO = "info"
ERROR = "error"

Listener = Callable[[], None]
Notifier = Callable[[str, str], None]


class HierarchyStore:
    """
    The in-memory hierarchy and selection, synchronized with the backend.

    Args:
        service: Backend client used for reads and mutations.
        context: Shared application context (connectivity, user, error).
        notifier: Optional ``notifier(level, message)`` callback for
            transient feedback; ``level`` is ``"info"`` or ``"error"``.
    """

    def __init__(
        self,
        service: RemoteDataService,
        context: AppContext,
        notifier: Optional[Notifier] = None,
    ) -> None:
        self._service = service
        self._context = context
        self._notifier = notifier
        self._listeners: List[Listener] = []
        self._groups: Hierarchy = []
        self.selected_group_id: Optional[str] = None
        self.selected_subgroup_id: Optional[str] = None

    # ------------------------------------------------------------------
    # Observation
    # ------------------------------------------------------------------
    @property
    def groups(self) -> Hierarchy:
        return self._groups

    @property
    def context(self) -> AppContext:
        return self._context

    def add_listener(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: Listener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------
    def load_all(self) -> bool:
        """
        Replace the tree with a fresh fetch of all three tables.

        On failure the previous tree is kept as-is.

        Returns:
            True if the tree was replaced.
        """
        if not self._context.is_connected:
            return False
        try:
            group_rows = self._service.select(GROUPS_TABLE)
            subgroup_rows = self._service.select(SUBGROUPS_TABLE)
            file_rows = self._service.select(FILES_TABLE)
        except RemoteServiceError as exc:
            self._fail("Could not load data", exc, transient=False)
            return False
        finally:
            self._context.is_loading = False

        self._groups = build_hierarchy(group_rows, subgroup_rows, file_rows)
        self._drop_dangling_selection()
        self._context.error = None
        counts = count_nodes(self._groups)
        log.info(
            "Loaded %d groups, %d subgroups, %d files",
            counts["groups"],
            counts["subgroups"],
            counts["files"],
        )
        self._changed()
        return True

    def clear(self) -> None:
        """Forget the tree and selection, e.g. after logout."""
        self._groups = []
        self.clear_selection()

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------
    def create_group(self, name: str) -> Optional[GroupNode]:
        """Create a group; returns the new node, or None if nothing happened."""
        if not name.strip() or not self._can_insert():
            return None
        try:
            row = self._service.insert(
                GROUPS_TABLE,
                {"name": name, "user_id": self._context.user_id},
            )
            record = Group.from_row(row)
        except (RemoteServiceError, KeyError, TypeError) as exc:
            self._fail("Could not create group", exc)
            return None

        node = GroupNode(record=record, subgroups=[], expanded=True)
        self._groups.append(node)
        self._succeed(f'Group "{name}" created')
        return node

    def create_subgroup(self, group_id: str, name: str) -> Optional[SubgroupNode]:
        """Create a subgroup under ``group_id``."""
        if not name.strip() or not group_id or not self._can_insert():
            return None
        try:
            row = self._service.insert(
                SUBGROUPS_TABLE,
                {"name": name, "group_id": group_id, "user_id": self._context.user_id},
            )
            record = Subgroup.from_row(row)
        except (RemoteServiceError, KeyError, TypeError) as exc:
            self._fail("Could not create subgroup", exc)
            return None

        node = SubgroupNode(record=record, files=[], expanded=True)
        parent = self.find_group(record.group_id)
        if parent is not None:
            parent.subgroups.append(node)
        else:
            log.warning("Created subgroup %s under unknown group %s", record.id, record.group_id)
        self._succeed(f'Subgroup "{name}" created')
        return node

    def create_file(self, subgroup_id: str, name: str, link: str) -> Optional[FileEntry]:
        """Add a file entry (name + link) under ``subgroup_id``."""
        if not subgroup_id or not name.strip() or not link.strip() or not self._can_insert():
            return None
        try:
            row = self._service.insert(
                FILES_TABLE,
                {
                    "name": name,
                    "link": link,
                    "subgroup_id": subgroup_id,
                    "user_id": self._context.user_id,
                },
            )
            entry = FileEntry.from_row(row)
        except (RemoteServiceError, KeyError, TypeError) as exc:
            self._fail("Could not add file", exc)
            return None

        parent = self.find_subgroup(entry.subgroup_id)
        if parent is not None:
            parent.files.append(entry)
        else:
            log.warning("Created file %s under unknown subgroup %s", entry.id, entry.subgroup_id)
        self._succeed(f'File "{name}" added')
        return entry

    # ------------------------------------------------------------------
    # Deletion
    # ------------------------------------------------------------------
    def delete_group(self, group_id: str) -> bool:
        """Delete a group; its subgroups and files go with it."""
        if not self._context.is_connected:
            return False
        group = self.find_group(group_id)
        name = group.name if group is not None else group_id
        try:
            self._service.delete(GROUPS_TABLE, group_id)
        except RemoteServiceError as exc:
            self._fail("Could not delete group", exc)
            return False

        self._groups = [g for g in self._groups if g.id != group_id]
        self._drop_dangling_selection()
        self._succeed(f'Group "{name}" deleted')
        return True

    def delete_subgroup(self, subgroup_id: str) -> bool:
        """Delete a subgroup and, with it, its files."""
        if not self._context.is_connected:
            return False
        subgroup = self.find_subgroup(subgroup_id)
        name = subgroup.name if subgroup is not None else subgroup_id
        try:
            self._service.delete(SUBGROUPS_TABLE, subgroup_id)
        except RemoteServiceError as exc:
            self._fail("Could not delete subgroup", exc)
            return False

        for group in self._groups:
            group.subgroups = [s for s in group.subgroups if s.id != subgroup_id]
        self._drop_dangling_selection()
        self._succeed(f'Subgroup "{name}" deleted')
        return True

    def delete_file(self, file_id: str) -> bool:
        """Delete a single file entry."""
        if not self._context.is_connected:
            return False
        entry = self.find_file(file_id)
        name = entry.name if entry is not None else file_id
        try:
            self._service.delete(FILES_TABLE, file_id)
        except RemoteServiceError as exc:
            self._fail("Could not delete file", exc)
            return False

        for group in self._groups:
            for subgroup in group.subgroups:
                subgroup.files = [f for f in subgroup.files if f.id != file_id]
        self._succeed(f'File "{name}" deleted')
        return True

    # ------------------------------------------------------------------
    # Local-only state
    # ------------------------------------------------------------------
    def toggle_expanded(self, group_id: str, subgroup_id: Optional[str] = None) -> None:
        """Flip the expanded flag of a group, or of one of its subgroups."""
        group = self.find_group(group_id)
        if group is None:
            return
        if subgroup_id is None:
            group.expanded = not group.expanded
        else:
            for subgroup in group.subgroups:
                if subgroup.id == subgroup_id:
                    subgroup.expanded = not subgroup.expanded
                    break
            else:
                return
        self._changed()

    def select_group(self, group_id: Optional[str]) -> None:
        self.selected_group_id = group_id
        self._changed()

    def select_subgroup(self, subgroup_id: Optional[str]) -> None:
        self.selected_subgroup_id = subgroup_id
        self._changed()

    def clear_selection(self) -> None:
        self.selected_group_id = None
        self.selected_subgroup_id = None
        self._changed()

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------
    def find_group(self, group_id: Optional[str]) -> Optional[GroupNode]:
        for group in self._groups:
            if group.id == group_id:
                return group
        return None

    def find_subgroup(self, subgroup_id: Optional[str]) -> Optional[SubgroupNode]:
        for group in self._groups:
            for subgroup in group.subgroups:
                if subgroup.id == subgroup_id:
                    return subgroup
        return None

    def find_file(self, file_id: Optional[str]) -> Optional[FileEntry]:
        for group in self._groups:
            for subgroup in group.subgroups:
                for entry in subgroup.files:
                    if entry.id == file_id:
                        return entry
        return None

    def selected_subgroup(self) -> Optional[SubgroupNode]:
        return self.find_subgroup(self.selected_subgroup_id)

    def files_for_selected_subgroup(self) -> List[FileEntry]:
        subgroup = self.selected_subgroup()
        return list(subgroup.files) if subgroup is not None else []

    def link_for(self, file_id: str) -> Optional[str]:
        """Return the link to copy for ``file_id``, if the entry is loaded."""
        entry = self.find_file(file_id)
        return entry.link if entry is not None else None

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _can_insert(self) -> bool:
        return self._context.is_connected and bool(self._context.user_id)

    def _drop_dangling_selection(self) -> None:
        if self.selected_group_id is not None and self.find_group(self.selected_group_id) is None:
            self.selected_group_id = None
        if self.selected_subgroup_id is not None and self.find_subgroup(self.selected_subgroup_id) is None:
            self.selected_subgroup_id = None

    def _succeed(self, message: str) -> None:
        self._context.error = None
        self._notify(INFO, message)
        self._changed()

    def _fail(self, message: str, exc: Exception, transient: bool = True) -> None:
        log.warning("%s: %s", message, exc)
        self._context.error = message
        self._context.is_connected = self._service.check_connection()
        if transient:
            self._notify(ERROR, message)
        self._changed()

    def _notify(self, level: str, message: str) -> None:
        if self._notifier is not None:
            self._notifier(level, message)

    def _changed(self) -> None:
        for listener in list(self._listeners):
            listener()
