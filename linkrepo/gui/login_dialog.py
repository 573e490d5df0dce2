"""Sign-in dialog.

This module provides :class:`LoginDialog`, a small dialog asking for
an email address and password. When the user confirms, the dialog
signs in through :class:`RemoteDataService` and stays open with a
warning if the backend rejects the credentials or cannot be reached.

On success the backend client holds the new session (and has already
notified its auth-state subscribers); :meth:`LoginDialog.exec_login`
additionally returns it to the caller.
"""
from __future__ import annotations

import logging
from typing import Optional

from PySide6.QtWidgets import (
    QDialog,
    QDialogButtonBox,
    QFormLayout,
    QLabel,
    QLineEdit,
    QMessageBox,
    QVBoxLayout,
)

from linkrepo.core.config import get_last_email, set_last_email
from linkrepo.core.remote_service import (
    AuthError,
    AuthSession,
    ConnectionLostError,
    RemoteDataService,
    RemoteServiceError,
)

log = logging.getLogger(__name__)


class LoginDialog(QDialog):
    """Dialog that signs the user in with email and password."""

    def __init__(self, service: RemoteDataService, parent=None) -> None:
        super().__init__(parent)
        self._service = service
        self._session: Optional[AuthSession] = None

        layout = QVBoxLayout(self)

        info_label = QLabel(f"Sign in to {service.base_url}")
        info_label.setWordWrap(True)
        layout.addWidget(info_label)

        form = QFormLayout()
        self._email_edit = QLineEdit(self)
        self._email_edit.setPlaceholderText("you@example.com")
        self._email_edit.setText(get_last_email() or "")
        self._password_edit = QLineEdit(self)
        self._password_edit.setEchoMode(QLineEdit.Password)
        form.addRow("Email:", self._email_edit)
        form.addRow("Password:", self._password_edit)
        layout.addLayout(form)

        buttons = QDialogButtonBox(
            QDialogButtonBox.Ok | QDialogButtonBox.Cancel,
            parent=self,
        )
        buttons.accepted.connect(self._on_sign_in_clicked)
        buttons.rejected.connect(self.reject)
        ok_button = buttons.button(QDialogButtonBox.Ok)
        if ok_button is not None:
            ok_button.setText("Sign in")
        layout.addWidget(buttons)

        self.setWindowTitle("Sign in")
        if self._email_edit.text():
            self._password_edit.setFocus()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def exec_login(self) -> Optional[AuthSession]:
        """Run the dialog and return the new session, or None if cancelled."""
        self._session = None
        result = self.exec()
        if result == QDialog.Accepted:
            return self._session
        return None

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _on_sign_in_clicked(self) -> None:
        """Attempt the sign-in; accept the dialog only on success."""
        email = self._email_edit.text().strip()
        password = self._password_edit.text()
        if not email or not password:
            return

        try:
            session = self._service.sign_in_with_password(email, password)
        except AuthError as exc:
            QMessageBox.warning(self, "Sign-in failed", f"Could not sign in:\n{exc}")
            self._password_edit.selectAll()
            self._password_edit.setFocus()
            return
        except ConnectionLostError as exc:
            log.warning("Sign-in failed, backend unreachable: %s", exc)
            QMessageBox.warning(
                self,
                "Connection error",
                "The server could not be reached.\n"
                "Check your internet connection and try again.",
            )
            return
        except RemoteServiceError as exc:
            log.warning("Sign-in failed: %s", exc)
            QMessageBox.warning(self, "Sign-in failed", str(exc))
            return

        set_last_email(email)
        self._session = session
        self.accept()
