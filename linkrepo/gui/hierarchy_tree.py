from __future__ import annotations

"""
Tree widget for navigating groups, subgroups and file links.

Design
------
The tree shows the three-level hierarchy held by ``HierarchyStore``:

- Group nodes (top level),
- Subgroup nodes under their group,
- File nodes under their subgroup.

The tree never talks to the backend and never mutates the store. It
renders whatever :meth:`HierarchyTree.set_hierarchy` is given and
turns user gestures into high-level signals that the main window
handles by calling store operations:

    groupSelected(group_id)
    subgroupSelected(group_id, subgroup_id)
    expandToggled(group_id, subgroup_id | None)
    createSubgroupRequested(group_id)
    delete{Group,Subgroup,File}Requested(id)
    copyLinkRequested(file_id) / openLinkRequested(file_id)

Expansion state belongs to the store. When the user expands or
collapses a node the tree emits ``expandToggled`` and the store's flag
is flipped; the next ``set_hierarchy`` call re-applies the flags.

Group and subgroup selection are independent, so both the selected
group and the selected subgroup are painted as selected rows.
"""

from typing import Iterable, Optional, Set

from PySide6.QtCore import QModelIndex, Qt, Signal
from PySide6.QtGui import QStandardItem, QStandardItemModel
from PySide6.QtWidgets import (
    QAbstractItemView,
    QMenu,
    QStyle,
    QStyleOptionViewItem,
    QTreeView,
)

from linkrepo.core.models import GroupNode


# Custom roles for the data stored on tree items.
NodeKindRole = Qt.UserRole + 1
NodeIdRole = Qt.UserRole + 2
GroupIdRole = Qt.UserRole + 3
ExpandedRole = Qt.UserRole + 4

# Node kinds.
GROUP_KIND = "group"
SUBGROUP_KIND = "subgroup"
FILE_KIND = "file"


class HierarchyTree(QTreeView):
    """
    Tree view over the group / subgroup / file hierarchy.

    Emits:
        groupSelected (str): A group row became current.
        subgroupSelected (str, str): A subgroup row became current;
            arguments are the parent group id and the subgroup id.
        expandToggled (str, object): The user expanded or collapsed a
            node; arguments are the group id and the subgroup id (None
            for the group itself).
        createSubgroupRequested (str): "New subgroup…" on a group.
        deleteGroupRequested (str), deleteSubgroupRequested (str),
        deleteFileRequested (str): Delete requests by id.
        copyLinkRequested (str), openLinkRequested (str): File actions.
    """

    groupSelected = Signal(str)
    subgroupSelected = Signal(str, str)
    expandToggled = Signal(str, object)
    createSubgroupRequested = Signal(str)
    deleteGroupRequested = Signal(str)
    deleteSubgroupRequested = Signal(str)
    deleteFileRequested = Signal(str)
    copyLinkRequested = Signal(str)
    openLinkRequested = Signal(str)

    def __init__(self, parent=None) -> None:
        super().__init__(parent)

        self._model = QStandardItemModel(self)
        self.setModel(self._model)
        self.setHeaderHidden(True)
        self.setSelectionMode(QAbstractItemView.SingleSelection)
        self.setEditTriggers(QAbstractItemView.NoEditTriggers)
        # Double-click opens links; do not let it also toggle expansion.
        self.setExpandsOnDoubleClick(False)

        # Set while the model is being rebuilt so that programmatic
        # expansion and selection do not echo back as user signals.
        self._populating = False

        # Ids (group and subgroup) painted as selected.
        self._highlight_ids: Set[str] = set()

        # Whether mutating context-menu actions are offered.
        self._actions_enabled = True

        self.selectionModel().currentChanged.connect(self._on_current_changed)
        self.expanded.connect(lambda index: self._on_expansion_changed(index, True))
        self.collapsed.connect(lambda index: self._on_expansion_changed(index, False))
        self.doubleClicked.connect(self._on_double_clicked)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def set_hierarchy(
        self,
        groups: Iterable[GroupNode],
        selected_group_id: Optional[str] = None,
        selected_subgroup_id: Optional[str] = None,
    ) -> None:
        """
        Rebuild the tree from ``groups``.

        The row that was current before the rebuild stays current if it
        still exists; otherwise the selected subgroup (or group) becomes
        current.

        Args:
            groups: Top-level group nodes, in display order.
            selected_group_id: Group to paint as selected, if any.
            selected_subgroup_id: Subgroup to paint as selected, if any.
        """
        previous = self._model.itemFromIndex(self.currentIndex()) if self.currentIndex().isValid() else None
        previous_key = (previous.data(NodeKindRole), previous.data(NodeIdRole)) if previous is not None else None

        self._populating = True
        try:
            self._model.clear()
            root = self._model.invisibleRootItem()
            dir_icon = self.style().standardIcon(QStyle.SP_DirIcon)
            link_icon = self.style().standardIcon(QStyle.SP_FileLinkIcon)

            current_item: Optional[QStandardItem] = None
            expanded_items = []

            for group in groups:
                group_item = self._make_item(group.name, GROUP_KIND, group.id, group.id)
                group_item.setIcon(dir_icon)
                group_item.setData(group.expanded, ExpandedRole)
                root.appendRow(group_item)
                if group.expanded:
                    expanded_items.append(group_item)
                if group.id == selected_group_id and current_item is None:
                    current_item = group_item

                for subgroup in group.subgroups:
                    sub_item = self._make_item(subgroup.name, SUBGROUP_KIND, subgroup.id, group.id)
                    sub_item.setIcon(dir_icon)
                    sub_item.setData(subgroup.expanded, ExpandedRole)
                    group_item.appendRow(sub_item)
                    if subgroup.expanded:
                        expanded_items.append(sub_item)
                    if subgroup.id == selected_subgroup_id:
                        current_item = sub_item

                    for entry in subgroup.files:
                        file_item = self._make_item(entry.name, FILE_KIND, entry.id, group.id)
                        file_item.setIcon(link_icon)
                        file_item.setToolTip(entry.link)
                        sub_item.appendRow(file_item)

            for item in expanded_items:
                self.setExpanded(item.index(), True)

            self._highlight_ids = {
                key for key in (selected_group_id, selected_subgroup_id) if key
            }
            if previous_key is not None:
                kept = self.item_for(*previous_key)
                if kept is not None:
                    current_item = kept
            if current_item is not None:
                self.setCurrentIndex(current_item.index())
        finally:
            self._populating = False
        self.viewport().update()

    def set_actions_enabled(self, enabled: bool) -> None:
        """Enable or disable the create/delete context-menu actions."""
        self._actions_enabled = enabled

    def item_for(self, kind: str, node_id: str) -> Optional[QStandardItem]:
        """Return the item of the given kind and id, searching depth-first."""

        def _dfs(parent: QStandardItem) -> Optional[QStandardItem]:
            for row in range(parent.rowCount()):
                child = parent.child(row)
                if child is None:
                    continue
                if child.data(NodeKindRole) == kind and child.data(NodeIdRole) == node_id:
                    return child
                found = _dfs(child)
                if found is not None:
                    return found
            return None

        return _dfs(self._model.invisibleRootItem())

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    @staticmethod
    def _make_item(label: str, kind: str, node_id: str, group_id: str) -> QStandardItem:
        item = QStandardItem(label)
        item.setEditable(False)
        item.setData(kind, NodeKindRole)
        item.setData(node_id, NodeIdRole)
        item.setData(group_id, GroupIdRole)
        return item

    def _on_current_changed(self, current: QModelIndex, previous: QModelIndex) -> None:
        if self._populating:
            return
        item = self._model.itemFromIndex(current)
        if item is None:
            return
        kind = item.data(NodeKindRole)
        if kind == GROUP_KIND:
            self.groupSelected.emit(item.data(NodeIdRole))
        elif kind == SUBGROUP_KIND:
            self.subgroupSelected.emit(item.data(GroupIdRole), item.data(NodeIdRole))

    def _on_expansion_changed(self, index: QModelIndex, expanded: bool) -> None:
        if self._populating:
            return
        item = self._model.itemFromIndex(index)
        if item is None:
            return
        if bool(item.data(ExpandedRole)) == expanded:
            return
        item.setData(expanded, ExpandedRole)
        kind = item.data(NodeKindRole)
        if kind == GROUP_KIND:
            self.expandToggled.emit(item.data(NodeIdRole), None)
        elif kind == SUBGROUP_KIND:
            self.expandToggled.emit(item.data(GroupIdRole), item.data(NodeIdRole))

    def _on_double_clicked(self, index: QModelIndex) -> None:
        item = self._model.itemFromIndex(index)
        if item is not None and item.data(NodeKindRole) == FILE_KIND:
            self.openLinkRequested.emit(item.data(NodeIdRole))

    def contextMenuEvent(self, event) -> None:
        """
        Show a context menu for the node under the cursor.

        As with selection, the tree only emits requests; the main
        window performs them through the store.
        """
        index = self.indexAt(event.pos())
        item = self._model.itemFromIndex(index) if index.isValid() else None
        if item is None:
            return

        kind = item.data(NodeKindRole)
        node_id = item.data(NodeIdRole)
        menu = QMenu(self)

        if kind == GROUP_KIND:
            new_action = menu.addAction("New subgroup…")
            new_action.setEnabled(self._actions_enabled)
            new_action.triggered.connect(
                lambda checked=False, gid=node_id: self.createSubgroupRequested.emit(gid)
            )
            delete_action = menu.addAction("Delete group")
            delete_action.setEnabled(self._actions_enabled)
            delete_action.triggered.connect(
                lambda checked=False, gid=node_id: self.deleteGroupRequested.emit(gid)
            )
        elif kind == SUBGROUP_KIND:
            delete_action = menu.addAction("Delete subgroup")
            delete_action.setEnabled(self._actions_enabled)
            delete_action.triggered.connect(
                lambda checked=False, sid=node_id: self.deleteSubgroupRequested.emit(sid)
            )
        elif kind == FILE_KIND:
            open_action = menu.addAction("Open link")
            open_action.triggered.connect(
                lambda checked=False, fid=node_id: self.openLinkRequested.emit(fid)
            )
            copy_action = menu.addAction("Copy link")
            copy_action.triggered.connect(
                lambda checked=False, fid=node_id: self.copyLinkRequested.emit(fid)
            )
            menu.addSeparator()
            delete_action = menu.addAction("Delete file")
            delete_action.setEnabled(self._actions_enabled)
            delete_action.triggered.connect(
                lambda checked=False, fid=node_id: self.deleteFileRequested.emit(fid)
            )

        if not menu.isEmpty():
            menu.exec(event.globalPos())

    def drawRow(self, painter, options, index) -> None:  # type: ignore[override]
        """Paint the selected group and selected subgroup as selected rows.

        Qt only knows one current index, but the selected group and the
        selected subgroup are tracked separately, so both are painted
        with the active selection color.
        """
        opt = QStyleOptionViewItem(options)
        item = self._model.itemFromIndex(index)
        if item is not None and item.data(NodeKindRole) in (GROUP_KIND, SUBGROUP_KIND):
            if item.data(NodeIdRole) in self._highlight_ids:
                opt.state |= QStyle.State_Selected
                opt.state |= QStyle.State_Active
        super().drawRow(painter, opt, index)
