"""
Qt table model for the file links of the selected subgroup.

Summary of design:
- The hierarchy lives in ``linkrepo.core.hierarchy_store`` as nested
  ``GroupNode`` / ``SubgroupNode`` objects. This file provides a thin
  adapter between one subgroup's ``FileEntry`` list and the Qt view
  system by implementing a ``QAbstractTableModel``.
- Three columns are exposed: Name, Link and Created. The link column
  shows the raw URI so that it can be inspected before opening or
  copying it.
- The model is read-only. Files are added and removed through the store
  and the main window then calls :meth:`FileTableModel.set_files` with
  the new list.
"""
from __future__ import annotations

from typing import Iterable, List, Optional

from PySide6.QtCore import QAbstractTableModel, QModelIndex, Qt
from PySide6.QtGui import QColor

from linkrepo.core.models import FileEntry


class FileTableModel(QAbstractTableModel):
    """
    Qt table model for a list of ``FileEntry`` objects.

    Rows are file entries in the order given (creation order, as held
    by the store); columns are fields of the entry.
    """

    # Column indices for clarity and to avoid magic numbers.
    COLUMN_NAME = 0
    COLUMN_LINK = 1
    COLUMN_CREATED = 2

    _COLUMN_DEFINITIONS = [
        (COLUMN_NAME, "Name"),
        (COLUMN_LINK, "Link"),
        (COLUMN_CREATED, "Created"),
    ]

    def __init__(self, files: Optional[Iterable[FileEntry]] = None, parent=None) -> None:
        super().__init__(parent)
        self._files: List[FileEntry] = []
        # Link most recently copied to the clipboard, drawn highlighted.
        self._copied_link: Optional[str] = None
        if files is not None:
            self.set_files(files)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def set_files(self, files: Iterable[FileEntry]) -> None:
        """Replace the rows with ``files``."""
        self.beginResetModel()
        self._files = list(files)
        self.endResetModel()

    def file_at(self, row: int) -> Optional[FileEntry]:
        """
        Return the file entry at the given row, or ``None`` if the row
        is out of range.
        """
        if 0 <= row < len(self._files):
            return self._files[row]
        return None

    def set_copied_link(self, link: Optional[str]) -> None:
        """Highlight rows whose link equals ``link`` (None clears)."""
        self._copied_link = link
        if self._files:
            top_left = self.index(0, 0)
            bottom_right = self.index(len(self._files) - 1, len(self._COLUMN_DEFINITIONS) - 1)
            self.dataChanged.emit(top_left, bottom_right, [Qt.ForegroundRole])

    # ------------------------------------------------------------------
    # QAbstractTableModel implementation
    # ------------------------------------------------------------------
    def rowCount(self, parent: QModelIndex = QModelIndex()) -> int:  # type: ignore[override]
        if parent.isValid():
            return 0
        return len(self._files)

    def columnCount(self, parent: QModelIndex = QModelIndex()) -> int:  # type: ignore[override]
        if parent.isValid():
            return 0
        return len(self._COLUMN_DEFINITIONS)

    def data(self, index: QModelIndex, role: int = Qt.DisplayRole):  # type: ignore[override]
        if not index.isValid():
            return None

        row = index.row()
        col = index.column()

        if not (0 <= row < len(self._files)):
            return None

        entry = self._files[row]

        if role == Qt.DisplayRole:
            if col == self.COLUMN_NAME:
                return entry.name
            if col == self.COLUMN_LINK:
                return entry.link
            if col == self.COLUMN_CREATED:
                # Prefer the parsed timestamp; fall back to the raw string.
                if entry.created_at is not None:
                    return entry.created_at.isoformat(sep=" ", timespec="seconds")
                return entry.created_at_raw or ""

        if role == Qt.ToolTipRole and col == self.COLUMN_LINK:
            return entry.link

        if role == Qt.ForegroundRole:
            if self._copied_link is not None and entry.link == self._copied_link:
                return QColor(Qt.darkGreen)

        if role == Qt.TextAlignmentRole:
            return int(Qt.AlignVCenter | Qt.AlignLeft)

        return None

    def headerData(
        self,
        section: int,
        orientation: Qt.Orientation,
        role: int = Qt.DisplayRole,
    ):
        """Provide column titles for horizontal headers."""
        if role != Qt.DisplayRole:
            return None

        if orientation == Qt.Horizontal:
            for col_index, title in self._COLUMN_DEFINITIONS:
                if section == col_index:
                    return title
            return ""

        return super().headerData(section, orientation, role)

    def flags(self, index: QModelIndex):  # type: ignore[override]
        """Items are selectable and enabled but not editable."""
        if not index.isValid():
            return Qt.NoItemFlags
        return Qt.ItemIsSelectable | Qt.ItemIsEnabled
