"""
Main window for the Link Repository GUI.

Design overview
---------------

The main window ties together the core subsystems:

Backend and session
-------------------
- The hosted backend (URL + public key) is configured once in
  ``~/.linkrepo/config.json``; on first launch the user is prompted for
  both values.
- ``SessionGuard`` resolves the session on startup and reports logouts.
  While signed out the main window is hidden and ``LoginDialog`` is
  shown; cancelling the dialog quits the application.
- With the ``sign_out_on_hide`` policy enabled (the default), minimizing
  the window or quitting the application signs the user out.

Core model
----------
- ``HierarchyStore`` holds the Group → Subgroup → FileEntry tree and
  the selection, and performs every create/delete against the backend.
- ``AppContext`` carries the connectivity flag and the sticky error
  message rendered as banners above the panels.

Views
-----
- Left panel: a "new group" field and ``HierarchyTree``. Right-clicking
  a group offers "New subgroup…" and "Delete group"; subgroups and files
  have their own delete entries; files can be opened or copied.
- Right panel: the file form (name + link) and a table of the selected
  subgroup's files. The form is enabled only when a subgroup is
  selected and the backend is reachable.

Interaction flow
----------------
- Every user action calls one store operation. The store patches its
  tree after the backend confirms and notifies its listeners; the window
  then rebuilds the tree and table from the store (coalesced into one
  refresh per event-loop turn).
- Transient feedback (created, deleted, failed) goes to the status bar.

Toolbar and menus
-----------------
Toolbar:
    - Reload
    - Sign out

Menus:
    - File: reload, change backend, sign out, quit
    - Help: about
"""

from __future__ import annotations

import logging
import sys
from typing import Optional

from PySide6.QtCore import QEvent, QSettings, Qt, QTimer, QUrl
from PySide6.QtGui import QAction, QDesktopServices, QGuiApplication
from PySide6.QtWidgets import (
    QAbstractItemView,
    QApplication,
    QHBoxLayout,
    QHeaderView,
    QInputDialog,
    QLabel,
    QLineEdit,
    QMainWindow,
    QMessageBox,
    QPushButton,
    QSplitter,
    QStatusBar,
    QTableView,
    QVBoxLayout,
    QWidget,
)

from linkrepo import __version__
from linkrepo.core.app_context import AppContext
from linkrepo.core.config import BackendConfig, get_backend_config, set_backend
from linkrepo.core.hierarchy_store import ERROR, HierarchyStore
from linkrepo.core.remote_service import RemoteDataService
from linkrepo.core.session_guard import SessionGuard
from linkrepo.gui.file_table_model import FileTableModel
from linkrepo.gui.hierarchy_tree import HierarchyTree
from linkrepo.gui.login_dialog import LoginDialog

log = logging.getLogger(__name__)

OFFLINE_MESSAGE = "Lost connection to the server. Use Reload to reconnect."

# How long a copied link stays highlighted in the file table.
COPIED_HIGHLIGHT_MS = 2000


class MainWindow(QMainWindow):
    """
    Main window: hierarchy tree on the left, file form and table on
    the right, connection and error banners on top.

    Args:
        service: Backend client.
        context: Shared application context.
        sign_out_on_hide: Passed on to ``SessionGuard``.
    """

    def __init__(
        self,
        service: RemoteDataService,
        context: AppContext,
        sign_out_on_hide: bool = True,
        parent: Optional[QWidget] = None,
    ) -> None:
        super().__init__(parent)
        self.setWindowTitle("Link Repository")

        self._service = service
        self._context = context

        # Per-machine UI settings (window geometry, splitter sizes).
        self._settings = QSettings("LinkRepo", "LinkRepository")

        self._store = HierarchyStore(service, context, notifier=self._on_store_message)
        self._store.add_listener(self._schedule_refresh)

        self._guard = SessionGuard(
            service,
            context,
            on_logged_out=self._on_logged_out,
            sign_out_on_hide=sign_out_on_hide,
        )

        # Set once the user chose to quit (e.g. cancelled the login).
        self._should_exit = False
        self._login_pending = False
        self._refresh_pending = False

        # Banners above both panels.
        self._offline_banner = QLabel(OFFLINE_MESSAGE, self)
        self._offline_banner.setStyleSheet("background: #ca8a04; color: white; padding: 6px;")
        self._offline_banner.setVisible(False)
        self._error_banner = QLabel(self)
        self._error_banner.setStyleSheet("background: #ef4444; color: white; padding: 6px;")
        self._error_banner.setVisible(False)

        # Left-hand panel: new-group form + tree.
        self._group_name_edit = QLineEdit(self)
        self._group_name_edit.setPlaceholderText("New group name")
        self._group_name_edit.returnPressed.connect(self._on_create_group)
        self._add_group_button = QPushButton("Add", self)
        self._add_group_button.clicked.connect(self._on_create_group)

        self._tree = HierarchyTree(self)
        self._tree.groupSelected.connect(self._store.select_group)
        self._tree.subgroupSelected.connect(self._on_subgroup_selected)
        self._tree.expandToggled.connect(self._store.toggle_expanded)
        self._tree.createSubgroupRequested.connect(self._on_create_subgroup)
        self._tree.deleteGroupRequested.connect(self._on_delete_group)
        self._tree.deleteSubgroupRequested.connect(self._on_delete_subgroup)
        self._tree.deleteFileRequested.connect(self._on_delete_file)
        self._tree.copyLinkRequested.connect(self._on_copy_link)
        self._tree.openLinkRequested.connect(self._on_open_link)

        group_row = QHBoxLayout()
        group_row.addWidget(self._group_name_edit)
        group_row.addWidget(self._add_group_button)

        left = QWidget(self)
        left_layout = QVBoxLayout(left)
        left_layout.setContentsMargins(0, 0, 0, 0)
        left_layout.addWidget(QLabel("<b>Groups</b>", self))
        left_layout.addLayout(group_row)
        left_layout.addWidget(self._tree)

        # Right-hand panel: file form + table.
        self._files_hint = QLabel(self)
        self._file_name_edit = QLineEdit(self)
        self._file_name_edit.setPlaceholderText("File name")
        self._file_link_edit = QLineEdit(self)
        self._file_link_edit.setPlaceholderText("File link")
        self._file_link_edit.returnPressed.connect(self._on_add_file)
        self._add_file_button = QPushButton("Add file", self)
        self._add_file_button.clicked.connect(self._on_add_file)

        self._file_model = FileTableModel(parent=self)
        self._table = QTableView(self)
        self._table.setModel(self._file_model)
        self._configure_table()
        self._table.doubleClicked.connect(self._on_table_double_clicked)

        self._open_button = QPushButton("Open", self)
        self._open_button.clicked.connect(lambda: self._with_selected_file(self._on_open_link))
        self._copy_button = QPushButton("Copy link", self)
        self._copy_button.clicked.connect(lambda: self._with_selected_file(self._on_copy_link))
        self._delete_file_button = QPushButton("Delete", self)
        self._delete_file_button.clicked.connect(lambda: self._with_selected_file(self._on_delete_file))

        form_row = QHBoxLayout()
        form_row.addWidget(self._file_name_edit)
        form_row.addWidget(self._file_link_edit)
        form_row.addWidget(self._add_file_button)

        table_buttons = QHBoxLayout()
        table_buttons.addStretch(1)
        table_buttons.addWidget(self._open_button)
        table_buttons.addWidget(self._copy_button)
        table_buttons.addWidget(self._delete_file_button)

        right = QWidget(self)
        right_layout = QVBoxLayout(right)
        right_layout.setContentsMargins(0, 0, 0, 0)
        right_layout.addWidget(QLabel("<b>Files</b>", self))
        right_layout.addWidget(self._files_hint)
        right_layout.addLayout(form_row)
        right_layout.addWidget(self._table)
        right_layout.addLayout(table_buttons)

        # Splitter: tree on the left, files on the right.
        self._splitter = QSplitter(self)
        self._splitter.addWidget(left)
        self._splitter.addWidget(right)
        self._splitter.setStretchFactor(0, 0)
        self._splitter.setStretchFactor(1, 1)

        central = QWidget(self)
        central_layout = QVBoxLayout(central)
        central_layout.addWidget(self._offline_banner)
        central_layout.addWidget(self._error_banner)
        central_layout.addWidget(self._splitter)
        self.setCentralWidget(central)

        self._create_actions()
        self._create_toolbar()
        self._create_menus()

        self.setStatusBar(QStatusBar(self))

        self.resize(1100, 700)
        self._restore_window_state()

        app = QGuiApplication.instance()
        if app is not None:
            app.applicationStateChanged.connect(self._on_application_state_changed)

        self._refresh_views()

    # ------------------------------------------------------------------
    # Accessors (mainly for tests)
    # ------------------------------------------------------------------
    @property
    def store(self) -> HierarchyStore:
        return self._store

    @property
    def guard(self) -> SessionGuard:
        return self._guard

    @property
    def tree(self) -> HierarchyTree:
        return self._tree

    @property
    def file_model(self) -> FileTableModel:
        return self._file_model

    # ------------------------------------------------------------------
    # Startup and session handling
    # ------------------------------------------------------------------
    def initialize_data(self) -> None:
        """Resolve the session and load the hierarchy.

        If there is no session, the logged-out handler schedules the
        login dialog.
        """
        if self._guard.start():
            self._store.load_all()
        else:
            self._context.is_loading = False
        self._refresh_views()

    def _on_logged_out(self) -> None:
        """Forget the user's data and ask for a new login."""
        log.info("Logged out")
        self._store.clear()
        if self._login_pending or self._should_exit:
            return
        self._login_pending = True
        # Defer so the dialog does not run inside a guard or store call.
        QTimer.singleShot(0, self._show_login)

    def _show_login(self) -> None:
        self._login_pending = False
        self.hide()
        dialog = LoginDialog(self._service)
        session = dialog.exec_login()
        if session is None:
            self._request_exit()
            return
        if self._guard.resolve():
            self._store.load_all()
        self._refresh_views()
        if self._context.session is not None:
            self.showNormal()

    def _request_exit(self) -> None:
        self._should_exit = True
        app = QApplication.instance()
        if app is not None:
            app.quit()
        self.close()

    def _on_sign_out(self) -> None:
        self._guard.sign_out()

    def _on_application_state_changed(self, state) -> None:
        if state == Qt.ApplicationHidden:
            self._guard.handle_visibility_change(True)

    def changeEvent(self, event) -> None:  # type: ignore[override]
        """Treat minimizing the window as the window becoming hidden."""
        if event.type() == QEvent.WindowStateChange and self.isMinimized():
            self._guard.handle_visibility_change(True)
        super().changeEvent(event)

    def closeEvent(self, event) -> None:  # type: ignore[override]
        # Closing the window quits; no login prompt after the unload sign-out.
        self._should_exit = True
        self._save_window_state()
        self._guard.handle_unload()
        self._guard.stop()
        super().closeEvent(event)
        app = QApplication.instance()
        if app is not None and not app.quitOnLastWindowClosed():
            app.quit()

    # ------------------------------------------------------------------
    # UI setup helpers
    # ------------------------------------------------------------------
    def _configure_table(self) -> None:
        header = self._table.horizontalHeader()
        header.setStretchLastSection(True)
        header.setSectionResizeMode(QHeaderView.Interactive)
        header.resizeSection(FileTableModel.COLUMN_NAME, 220)
        header.resizeSection(FileTableModel.COLUMN_LINK, 360)

        self._table.setAlternatingRowColors(True)
        self._table.setSelectionBehavior(QAbstractItemView.SelectRows)
        self._table.setSelectionMode(QAbstractItemView.SingleSelection)
        self._table.verticalHeader().setVisible(False)

    def _create_actions(self) -> None:
        """Create shared actions used by the toolbar and menus."""
        # Reload: re-check the backend and fetch the whole hierarchy.
        self._reload_action = QAction("Reload", self)
        self._reload_action.setToolTip("Reconnect if needed and reload all groups, subgroups and files")
        self._reload_action.setShortcut("Ctrl+R")
        self._reload_action.triggered.connect(self._on_reload)
        self.addAction(self._reload_action)

        self._sign_out_action = QAction("Sign out", self)
        self._sign_out_action.setToolTip("End the session and return to the sign-in dialog")
        self._sign_out_action.triggered.connect(self._on_sign_out)

        self._change_backend_action = QAction("Change backend…", self)
        self._change_backend_action.setToolTip("Set the server URL and key")
        self._change_backend_action.triggered.connect(self._on_change_backend)

        self._quit_action = QAction("Quit", self)
        self._quit_action.setShortcut("Ctrl+Q")
        self._quit_action.triggered.connect(self.close)

        self._about_action = QAction("About", self)
        self._about_action.triggered.connect(self._on_about)

    def _create_toolbar(self) -> None:
        toolbar = self.addToolBar("Main")
        toolbar.setObjectName("MainToolbar")
        toolbar.setMovable(False)
        toolbar.setFloatable(False)

        toolbar.addAction(self._reload_action)
        toolbar.addSeparator()
        toolbar.addAction(self._sign_out_action)

    def _create_menus(self) -> None:
        menubar = self.menuBar()

        file_menu = menubar.addMenu("&File")
        file_menu.addAction(self._reload_action)
        file_menu.addAction(self._change_backend_action)
        file_menu.addSeparator()
        file_menu.addAction(self._sign_out_action)
        file_menu.addAction(self._quit_action)

        help_menu = menubar.addMenu("&Help")
        help_menu.addAction(self._about_action)

    def _restore_window_state(self) -> None:
        geometry = self._settings.value("window_geometry")
        if geometry is not None:
            self.restoreGeometry(geometry)
        splitter_state = self._settings.value("splitter_state")
        if splitter_state is not None:
            self._splitter.restoreState(splitter_state)

    def _save_window_state(self) -> None:
        self._settings.setValue("window_geometry", self.saveGeometry())
        self._settings.setValue("splitter_state", self._splitter.saveState())

    # ------------------------------------------------------------------
    # Rendering
    # ------------------------------------------------------------------
    def _schedule_refresh(self) -> None:
        """Coalesce store notifications into one refresh per event-loop turn."""
        if self._refresh_pending:
            return
        self._refresh_pending = True
        QTimer.singleShot(0, self._refresh_views)

    def _refresh_views(self) -> None:
        self._refresh_pending = False
        store = self._store
        context = self._context
        connected = context.is_connected

        self._tree.set_hierarchy(
            store.groups,
            selected_group_id=store.selected_group_id,
            selected_subgroup_id=store.selected_subgroup_id,
        )
        self._tree.set_actions_enabled(connected)

        subgroup = store.selected_subgroup()
        self._file_model.set_files(subgroup.files if subgroup is not None else [])

        if subgroup is not None:
            self._files_hint.setText(f"Files in <b>{subgroup.name}</b>")
        elif store.selected_group_id is not None:
            self._files_hint.setText("Select a subgroup to manage files")
        else:
            self._files_hint.setText("Select a group to manage files")

        self._group_name_edit.setEnabled(connected)
        self._add_group_button.setEnabled(connected)
        file_form_enabled = connected and subgroup is not None
        self._file_name_edit.setEnabled(file_form_enabled)
        self._file_link_edit.setEnabled(file_form_enabled)
        self._add_file_button.setEnabled(file_form_enabled)
        self._delete_file_button.setEnabled(connected)

        self._offline_banner.setVisible(not connected)
        self._error_banner.setText(context.error or "")
        self._error_banner.setVisible(bool(context.error))

        if context.is_loading:
            self.statusBar().showMessage("Loading…")

    def _on_store_message(self, level: str, message: str) -> None:
        if level == ERROR:
            log.debug("Store error message: %s", message)
        self.statusBar().showMessage(message, 3000)

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------
    def _on_reload(self) -> None:
        if self._context.user_id is None:
            # Startup stopped before the user was known (e.g. offline);
            # resolve again so that creates have an owner.
            if not self._guard.resolve():
                self._refresh_views()
                return
        elif not self._context.is_connected:
            self._context.is_connected = self._service.check_connection()
        if self._store.load_all():
            self.statusBar().showMessage("Reloaded", 3000)
        self._refresh_views()

    def _on_create_group(self) -> None:
        if self._store.create_group(self._group_name_edit.text()) is not None:
            self._group_name_edit.clear()

    def _on_subgroup_selected(self, group_id: str, subgroup_id: str) -> None:
        self._store.select_subgroup(subgroup_id)

    def _on_create_subgroup(self, group_id: str) -> None:
        """
        Slot called when the tree requests a new subgroup.

        Selects the group, prompts for a name and creates the subgroup
        through the store. Blank names are ignored.
        """
        self._store.select_group(group_id)
        name, ok = QInputDialog.getText(self, "New subgroup", "Subgroup name:")
        if not ok:
            return
        self._store.create_subgroup(group_id, name)

    def _on_add_file(self) -> None:
        subgroup_id = self._store.selected_subgroup_id
        if subgroup_id is None:
            return
        entry = self._store.create_file(
            subgroup_id,
            self._file_name_edit.text(),
            self._file_link_edit.text(),
        )
        if entry is not None:
            self._file_name_edit.clear()
            self._file_link_edit.clear()

    def _on_delete_group(self, group_id: str) -> None:
        group = self._store.find_group(group_id)
        if group is None:
            return
        reply = QMessageBox.question(
            self,
            "Delete group",
            f"Delete group '{group.name}' with all its subgroups and files?",
            QMessageBox.Yes | QMessageBox.No,
            QMessageBox.No,
        )
        if reply != QMessageBox.Yes:
            return
        self._store.delete_group(group_id)

    def _on_delete_subgroup(self, subgroup_id: str) -> None:
        subgroup = self._store.find_subgroup(subgroup_id)
        if subgroup is None:
            return
        reply = QMessageBox.question(
            self,
            "Delete subgroup",
            f"Delete subgroup '{subgroup.name}' with all its files?",
            QMessageBox.Yes | QMessageBox.No,
            QMessageBox.No,
        )
        if reply != QMessageBox.Yes:
            return
        self._store.delete_subgroup(subgroup_id)

    def _on_delete_file(self, file_id: str) -> None:
        self._store.delete_file(file_id)

    def _on_copy_link(self, file_id: str) -> None:
        link = self._store.link_for(file_id)
        if link is None:
            return
        clipboard = QGuiApplication.clipboard()
        if clipboard is None:
            self._context.error = "Could not copy link"
            self.statusBar().showMessage("Could not copy link", 3000)
            self._refresh_views()
            return
        clipboard.setText(link)
        self._file_model.set_copied_link(link)
        QTimer.singleShot(COPIED_HIGHLIGHT_MS, lambda: self._file_model.set_copied_link(None))
        self.statusBar().showMessage("Link copied to clipboard", 3000)

    def _on_open_link(self, file_id: str) -> None:
        link = self._store.link_for(file_id)
        if link:
            QDesktopServices.openUrl(QUrl(link))

    def _on_table_double_clicked(self, index) -> None:
        if not index.isValid():
            return
        entry = self._file_model.file_at(index.row())
        if entry is not None:
            self._on_open_link(entry.id)

    def _with_selected_file(self, handler) -> None:
        selection_model = self._table.selectionModel()
        if selection_model is None:
            return
        rows = selection_model.selectedRows()
        if not rows:
            return
        entry = self._file_model.file_at(rows[0].row())
        if entry is not None:
            handler(entry.id)

    def _on_change_backend(self) -> None:
        current = get_backend_config()
        if prompt_for_backend(self, current) is not None:
            QMessageBox.information(
                self,
                "Backend changed",
                "The new server settings will be used the next time the application starts.",
            )

    def _on_about(self) -> None:
        QMessageBox.information(
            self,
            "About Link Repository",
            f"Link Repository {__version__}\n\n"
            "Organize file links in groups and subgroups.\n"
            f"Server: {self._service.base_url}",
        )


# --------------------------------------------------------------------------
# Backend configuration prompt
# --------------------------------------------------------------------------
def prompt_for_backend(parent: Optional[QWidget], current: BackendConfig) -> Optional[BackendConfig]:
    """Ask for the backend URL and key and persist them.

    Returns:
        The updated configuration, or None if the user cancelled.
    """
    url, ok = QInputDialog.getText(
        parent,
        "Server URL",
        "Server URL (e.g. https://abcd.supabase.co):",
        QLineEdit.Normal,
        current.backend_url or "",
    )
    url = url.strip()
    if not ok or not url:
        return None

    key, ok = QInputDialog.getText(
        parent,
        "Server key",
        "Public (anon) API key:",
        QLineEdit.Normal,
        current.anon_key or "",
    )
    key = key.strip()
    if not ok or not key:
        return None

    set_backend(url, key)
    return get_backend_config()


def _ensure_backend_configured() -> Optional[BackendConfig]:
    """Return a complete backend configuration, prompting on first run."""
    cfg = get_backend_config()
    if cfg.is_complete:
        return cfg

    QMessageBox.information(
        None,
        "Connect to a server",
        "Link Repository stores your groups and links on a hosted server.\n\n"
        "Enter the server URL and its public API key to continue. "
        "They are saved in ~/.linkrepo/config.json.",
    )
    return prompt_for_backend(None, cfg)


# ------------------------------------------------------------------
# Application entry points
# ------------------------------------------------------------------


def run() -> None:
    """
    Start the Qt application and show the main window.

    This is intended for programmatic use:

        from linkrepo.gui.main_window import run
        run()
    """
    app = QApplication.instance()
    if app is None:
        app = QApplication(sys.argv)
    # The main window is hidden while the login dialog is up; closing the
    # dialog must not end the application.
    app.setQuitOnLastWindowClosed(False)

    cfg = _ensure_backend_configured()
    if cfg is None:
        return

    service = RemoteDataService.from_config(cfg)
    context = AppContext()
    window = MainWindow(service, context, sign_out_on_hide=cfg.sign_out_on_hide)
    window.show()

    # Resolve the session after the window exists so that the login
    # dialog (if needed) has a clear context.
    window.initialize_data()

    if getattr(window, "_should_exit", False):
        return

    app.exec()


def main() -> None:
    """
    Console-script entry point.

    This is what ``linkrepo`` calls after installation.
    """
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    run()
