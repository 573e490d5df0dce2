"""
test_login_dialog.py

Tests for LoginDialog against the in-memory backend.
"""

from unittest.mock import patch

import pytest
from PySide6.QtWidgets import QDialog

from conftest import FakeRemoteService
from linkrepo.core import config
from linkrepo.core.remote_service import AuthError
from linkrepo.gui.login_dialog import LoginDialog

pytestmark = pytest.mark.gui


@pytest.fixture
def signed_out_service():
    return FakeRemoteService()


def test_successful_sign_in_accepts_and_remembers_email(qtbot, signed_out_service):
    dialog = LoginDialog(signed_out_service)
    qtbot.addWidget(dialog)
    dialog._email_edit.setText(" someone@example.com ")
    dialog._password_edit.setText("secret")

    dialog._on_sign_in_clicked()

    assert dialog.result() == QDialog.Accepted
    assert signed_out_service.session is not None
    assert config.get_last_email() == "someone@example.com"


def test_last_email_is_prefilled(qtbot, signed_out_service):
    config.set_last_email("someone@example.com")
    dialog = LoginDialog(signed_out_service)
    qtbot.addWidget(dialog)
    assert dialog._email_edit.text() == "someone@example.com"


def test_empty_fields_do_nothing(qtbot, signed_out_service):
    dialog = LoginDialog(signed_out_service)
    qtbot.addWidget(dialog)

    dialog._on_sign_in_clicked()

    assert signed_out_service.calls == []
    assert dialog.result() != QDialog.Accepted


def test_rejected_credentials_keep_dialog_open(qtbot, signed_out_service, monkeypatch):
    def reject(email, password):
        raise AuthError("Invalid login credentials", status_code=400)

    monkeypatch.setattr(signed_out_service, "sign_in_with_password", reject)
    dialog = LoginDialog(signed_out_service)
    qtbot.addWidget(dialog)
    dialog._email_edit.setText("someone@example.com")
    dialog._password_edit.setText("wrong")

    with patch("linkrepo.gui.login_dialog.QMessageBox.warning") as warning:
        dialog._on_sign_in_clicked()

    warning.assert_called_once()
    assert dialog.result() != QDialog.Accepted
    assert config.get_last_email() is None
