"""Tests for the app's non-visual helpers and logging setup.

Tests cover:
- report(): one notification per result, warnings, re-authentication on 401
- Choice lists for category and store fields
- Table cell formatting
- setup_logging(): handlers, levels and quiet third-party loggers
"""

import logging
import tempfile
from pathlib import Path
from unittest.mock import Mock

import pytest
from textual.logging import TextualHandler

from restaurant_admin_tui.api import ApiClient
from restaurant_admin_tui.config import AdminConfig
from restaurant_admin_tui.editing import FAILED, OK, Result
from restaurant_admin_tui.errors import NotAuthorizedError, TransportError
from restaurant_admin_tui.log_config import setup_logging
from restaurant_admin_tui.main import RestaurantAdminApp


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def app():
    config = AdminConfig(categories={1: "Hamburguesas", 4: "Papas"})
    app = RestaurantAdminApp(config, api=ApiClient("http://admin.test"))
    app.notify = Mock()
    app.reauthenticate = Mock()
    return app


# ============================================================================
# Reporting
# ============================================================================


class TestReport:
    def test_success_notifies_once(self, app):
        assert app.report(Result(OK, "Saved"), "Saved") is True

        app.notify.assert_called_once_with("Saved", severity="information")

    def test_success_without_message_is_silent(self, app):
        app.report(Result(OK))
        app.notify.assert_not_called()

    def test_failure_notifies_error(self, app):
        result = Result.failed(TransportError("Server exploded"))

        assert app.report(result, "Saved") is False

        app.notify.assert_called_once_with("Server exploded", severity="error")
        app.reauthenticate.assert_not_called()

    def test_expired_session_asks_to_sign_in(self, app):
        app.report(Result.failed(NotAuthorizedError()))

        app.reauthenticate.assert_called_once()

    def test_warnings_follow_the_main_message(self, app):
        app.report(Result(OK, "Record deleted", warnings=["image kept"]), "Record deleted")

        assert app.notify.call_count == 2
        app.notify.assert_called_with("image kept", severity="warning")

    def test_failed_status_constant(self, app):
        app.report(Result(FAILED, "That record is hidden by the current filter"))
        app.notify.assert_called_once_with(
            "That record is hidden by the current filter", severity="error"
        )


# ============================================================================
# Choices and Cells
# ============================================================================


class TestChoices:
    def test_categories_include_values_in_use(self, app):
        app.model.replace_records([{"id": 1, "Nombre": "A", "tipo": 9}])

        choices = app.field_choices("tipo")

        assert choices == [("Hamburguesas", 1), ("Papas", 4), ("Category 9", 9)]

    def test_plain_fields_have_no_choices(self, app):
        assert app.field_choices("Nombre") is None

    def test_store_names(self, app):
        app.current_section = "staff"
        app.store_names = ["Centro", "Laureles"]
        app.model.replace_records([{"id": 3, "correo": "a@b.co", "PuntoVenta": "Envigado"}])

        assert app.field_choices("PuntoVenta") == [
            ("Centro", "Centro"),
            ("Laureles", "Laureles"),
            ("Envigado", "Envigado"),
        ]

    def test_flag_filter_options(self, app):
        assert app.filter_options("Activo") == [("Active", 1), ("Inactive", 0)]

    def test_format_cell(self, app):
        assert app.format_cell("Activo", 1) == "yes"
        assert app.format_cell("tipo", 4) == "Papas"
        assert app.format_cell("Nombre", None) == ""


# ============================================================================
# Logging
# ============================================================================


class TestSetupLogging:
    @pytest.fixture
    def root_logger(self):
        root = logging.getLogger()
        handlers = list(root.handlers)
        level = root.level
        yield root
        for handler in list(root.handlers):
            if handler not in handlers:
                root.removeHandler(handler)
                handler.close()
        root.setLevel(level)

    def test_handlers_and_levels(self, root_logger):
        with tempfile.TemporaryDirectory() as tmpdir:
            log_file = Path(tmpdir) / "logs" / "admin.log"
            before = list(root_logger.handlers)

            setup_logging(AdminConfig(log_level="DEBUG", log_file=log_file))

            added = [h for h in root_logger.handlers if h not in before]
            assert any(isinstance(h, TextualHandler) for h in added)
            file_handlers = [h for h in added if isinstance(h, logging.FileHandler)]
            assert len(file_handlers) == 1
            assert log_file.parent.is_dir()
            assert root_logger.level == logging.DEBUG
            assert logging.getLogger("httpx").level == logging.WARNING

            for handler in file_handlers:
                root_logger.removeHandler(handler)
                handler.close()

    def test_unknown_level_falls_back_to_info(self, root_logger):
        setup_logging(AdminConfig(log_level="LOUD"))
        assert root_logger.level == logging.INFO
