"""Main TUI application."""

import logging
from typing import Any, Dict, Hashable, List, Optional, Tuple

from textual import work
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Horizontal, Vertical, VerticalScroll
from textual.widgets import (
    Checkbox,
    DataTable,
    Footer,
    Header,
    Input,
    Label,
    Select,
    Static,
)

from .api import ApiClient, AuthClient, SalesClient
from .config import AdminConfig, load_config
from .editing import CANCELLED, FAILED, ConfirmPrompt, EditingModel, Result
from .errors import AdminError, NotAuthorizedError
from .log_config import setup_logging
from .sales import Shift, format_money, format_qty
from .schema import BOOL, FLAG
from .sections import DEFAULT_SECTION, SECTIONS, Section, distinct_values, location_meta
from .storage import ObjectStorageClient
from .ui import (
    AboutScreen,
    ConfirmScreen,
    CreateRecordScreen,
    FilterScreen,
    LoginScreen,
    PasswordModal,
    SalesModal,
    SectionSelectScreen,
    UploadImageScreen,
    display_value,
    field_widget,
    strength_text,
    widget_value,
)

logger = logging.getLogger(__name__)

FIELD_CLASS = "record-field"


class RestaurantAdminApp(App):
    """Main application."""

    # Configuration constants
    RECORDS_TABLE_WIDTH = "35%"
    EDITOR_PANEL_WIDTH = "65%"

    BINDINGS = [
        Binding("ctrl+s", "save", "Save", show=True),
        Binding("ctrl+u", "discard", "Discard", show=True),
        Binding("n", "new_record", "New", show=True),
        Binding("delete", "delete_record", "Delete", show=True),
        Binding("f", "filter", "Filter", show=True),
        Binding("c", "change_section", "Section", show=True),
        Binding("i", "upload_image", "Image", show=True),
        Binding("g", "sales", "Sales", show=True),
        Binding("r", "reload", "Reload", show=True),
        Binding("p", "reset_password", "Reset password", show=False),
        Binding("x", "delete_category", "Delete category", show=False),
        Binding("ctrl+o", "sign_out", "Sign out", show=False),
        Binding("?", "about", "About", show=True),
        Binding("q", "quit", "Quit", show=True),
    ]

    CSS = f"""
    Screen {{
        layout: vertical;
    }}

    #dashboard {{
        height: 1;
        padding: 0 1;
        background: $boost;
    }}

    #main-container {{
        width: 100%;
        height: 1fr;
        layout: horizontal;
    }}

    #records-table {{
        width: {RECORDS_TABLE_WIDTH};
        height: 100%;
        border: solid $accent;
    }}

    #editor-panel {{
        width: {EDITOR_PANEL_WIDTH};
        height: 100%;
        border: solid $accent;
    }}

    #editor-status {{
        height: auto;
        padding: 0 1;
    }}

    .dirty {{
        color: $warning;
        text-style: bold;
    }}

    .field-label {{
        text-style: bold;
        padding: 0 1;
    }}
    """

    def __init__(self, config: Optional[AdminConfig] = None, api: Optional[ApiClient] = None):
        """Initialize the app.

        Args:
            config: Settings, loaded from pyproject.toml when omitted
            api: Backend client, built from ``config`` when omitted
        """
        super().__init__()
        self.config = config or load_config()
        self.api = api or ApiClient(
            self.config.base_url,
            session_token=self.config.session_token,
            session_cookie=self.config.session_cookie,
            timeout=self.config.timeout,
        )
        self.storage = ObjectStorageClient(self.api, self.config.fallback_image)
        self.sales = SalesClient(self.api)
        self.auth = AuthClient(self.api)
        self.models: Dict[str, EditingModel] = {
            name: EditingModel(
                section.schema,
                section.collection(self.api),
                self.confirm,
                storage=self.storage if section.image_target else None,
                image_target=section.image_target,
            )
            for name, section in SECTIONS.items()
        }
        self.current_section = DEFAULT_SECTION
        self.store_names: List[str] = []
        self.shifts: Dict[str, Shift] = {}
        self._row_keys: Dict[str, Hashable] = {}

    @property
    def section(self) -> Section:
        return SECTIONS[self.current_section]

    @property
    def model(self) -> EditingModel:
        return self.models[self.current_section]

    def compose(self) -> ComposeResult:
        """Compose the app."""
        yield Header()
        yield Static("Sales: loading", id="dashboard")
        with Horizontal(id="main-container"):
            yield DataTable(id="records-table", cursor_type="row")
            with Vertical(id="editor-panel"):
                yield Static("Select a record and press Enter", id="editor-status", markup=False)
                yield VerticalScroll(id="editor-fields")
        yield Footer()

    def on_mount(self) -> None:
        """App mounted."""
        self.title = "Restaurant Admin"
        self._update_subtitle()
        self.start()
        self.set_interval(self.config.refresh_interval, self.refresh_dashboard)

    def _update_subtitle(self) -> None:
        self.sub_title = f"Editing {self.section.display_name}"

    # ------------------------------------------------------------------
    # Session and confirmation
    # ------------------------------------------------------------------

    async def confirm(self, prompt: ConfirmPrompt) -> bool:
        """Confirmation channel handed to every editing model."""
        return bool(await self.push_screen_wait(ConfirmScreen(prompt)))

    @work(exclusive=True, group="session")
    async def start(self) -> None:
        if self.api.session_token:
            try:
                admin = await self.auth.me()
                logger.info("Using configured session for %s", admin.get("email"))
            except NotAuthorizedError:
                self.notify("The configured session has expired", severity="warning")
                self.api.session_token = None
            except AdminError as e:
                logger.warning("Could not check the session: %s", e.message)
        if not self.api.session_token and not await self.sign_in():
            self.exit()
            return
        await self.load_section()
        self.refresh_dashboard()

    async def sign_in(self) -> bool:
        """Ask for credentials until login succeeds or the operator gives up."""
        while True:
            credentials = await self.push_screen_wait(LoginScreen())
            if credentials is None:
                return False
            try:
                admin = await self.auth.login(*credentials)
            except AdminError as e:
                self.notify(e.message, severity="error")
                continue
            self.notify(f"Signed in as {admin.get('email') or credentials[0]}", severity="information")
            return True

    @work(exclusive=True, group="session")
    async def reauthenticate(self) -> None:
        self.api.session_token = None
        if await self.sign_in():
            self.notify("Signed in again. Repeat your last action.", severity="information")

    def report(self, result: Result, success: Optional[str] = None) -> bool:
        """Turn a result into exactly one notification, plus any warnings."""
        if result.status == FAILED:
            self.notify(result.message, severity="error")
            if isinstance(result.error, NotAuthorizedError):
                self.reauthenticate()
        elif result.ok and success:
            self.notify(success, severity="information")
        for warning in result.warnings:
            self.notify(warning, severity="warning")
        return result.ok

    # ------------------------------------------------------------------
    # Loading and rendering
    # ------------------------------------------------------------------

    async def load_section(self) -> None:
        """Fetch the current section and rebuild the table and editor."""
        result = await self.model.load()
        self.report(result)
        if self.current_section == "staff":
            try:
                self.store_names = await self.model.collection.store_names()
            except AdminError as e:
                logger.warning("Could not load store names: %s", e.message)
        await self.build_editor()
        self.populate_table()
        if self.section.singleton and self.model.selection is None:
            keys = self.model.visible_keys()
            if keys:
                await self.model.select(keys[0])
        self.update_editor()

    @work(exclusive=True, group="dashboard")
    async def refresh_dashboard(self) -> None:
        """Refresh the global sales bar."""
        if not self.api.session_token:
            return
        bar = self.query_one("#dashboard", Static)
        try:
            reports = await self.sales.dashboard()
            self.shifts = await self.sales.active_shifts()
        except AdminError as e:
            logger.warning("Dashboard refresh failed: %s", e.message)
            bar.update("Sales: unavailable")
            return
        parts = [
            f"{label}: {format_money(report.revenue)} ({format_qty(report.qty)} items)"
            for label, report in reports.items()
        ]
        parts.append(f"Active shifts: {len(self.shifts)}")
        bar.update("  |  ".join(parts))

    def field_choices(self, name: str) -> Optional[List[Tuple[str, Any]]]:
        """Fixed choices for a field in the editor and create form."""
        if self.current_section == "menu" and name == "tipo":
            known = sorted(self.config.categories)
        elif self.current_section == "staff" and name == "PuntoVenta" and self.store_names:
            known = list(self.store_names)
        else:
            return None
        # values already in use stay selectable even when not configured
        for value in distinct_values(self.model.records.values(), name):
            if value not in known:
                known.append(value)
        if name == "tipo":
            return [(self.config.category_label(tipo), tipo) for tipo in known]
        return [(str(value), value) for value in known]

    def filter_options(self, name: str) -> List[Tuple[str, Any]]:
        spec = self.section.schema.spec(name)
        if spec.kind == FLAG:
            return [("Active", 1), ("Inactive", 0)]
        if spec.kind == BOOL:
            return [("Active", True), ("Inactive", False)]
        values = distinct_values(self.model.records.values(), name)
        if name == "tipo":
            return [(self.config.category_label(value), value) for value in values]
        return [(str(value), value) for value in values]

    def format_cell(self, name: str, value: Any) -> str:
        spec = self.section.schema.spec(name)
        if spec is not None and spec.kind in (FLAG, BOOL):
            return "yes" if value else "no"
        if name == "tipo":
            return self.config.category_label(value)
        return "" if value is None else str(value)

    def populate_table(self) -> None:
        """Fill the table with the visible records, keeping the cursor on the selection."""
        table = self.query_one("#records-table", DataTable)
        table.clear(columns=True)
        table.cursor_type = "row"
        for name, label in self.section.columns:
            table.add_column(label, key=name)
        table.add_column("", key="dirty")

        self._row_keys = {}
        for key in self.model.visible_keys():
            record = self.model.records[key]
            cells = [self.format_cell(name, record.get(name)) for name, _ in self.section.columns]
            table.add_row(*cells, self._dirty_mark(key), key=str(key))
            self._row_keys[str(key)] = key
        self.sync_cursor()

    def sync_cursor(self) -> None:
        table = self.query_one("#records-table", DataTable)
        selection = self.model.selection
        if selection is None or str(selection) not in self._row_keys:
            return
        table.move_cursor(row=table.get_row_index(str(selection)))

    def _dirty_mark(self, key: Hashable) -> str:
        return "*" if self.model.is_dirty(key) else ""

    def mark_dirty(self, key: Hashable) -> None:
        if str(key) not in self._row_keys:
            return
        table = self.query_one("#records-table", DataTable)
        table.update_cell(str(key), "dirty", self._dirty_mark(key))

    async def build_editor(self) -> None:
        """Mount one widget per field of the current section."""
        container = self.query_one("#editor-fields", VerticalScroll)
        await container.remove_children()
        widgets = []
        for spec in self.section.schema.fields:
            if spec.kind not in (FLAG, BOOL):
                widgets.append(Label(spec.label, classes="field-label"))
            widgets.append(field_widget(spec, spec.default(), self.field_choices(spec.name), classes=FIELD_CLASS))
        if self.section.schema.spec("password"):
            widgets.append(Static(strength_text(""), id="password-strength"))
        await container.mount_all(widgets)

    def update_editor(self) -> None:
        """Show the effective record of the selection in the editor fields."""
        status = self.query_one("#editor-status", Static)
        key = self.model.selection
        record = self.model.effective(key) if key is not None else None
        for widget in self.query(f".{FIELD_CLASS}"):
            widget.disabled = record is None
        if record is None:
            status.update("Select a record and press Enter")
            status.remove_class("dirty")
            return

        with self.prevent(Input.Changed, Checkbox.Changed, Select.Changed):
            for spec in self.section.schema.fields:
                widget = self.query_one(f"#field-{spec.name}")
                value = record.get(spec.name)
                if isinstance(widget, Select):
                    if value in (None, ""):
                        widget.clear()
                    elif widget.value != value:
                        widget.value = value
                elif widget.value != display_value(spec, value):
                    widget.value = display_value(spec, value)
        self.update_status()

    def update_status(self) -> None:
        status = self.query_one("#editor-status", Static)
        key = self.model.selection
        if key is None:
            return
        record = self.model.effective(key)
        text = self.section.schema.title(record)
        image_field = self.section.schema.image_field
        if image_field and record.get(image_field):
            text += f"\nImage: {record[image_field]}"
        if self.model.is_dirty(key):
            text += "\nUnsaved changes (ctrl+s to save, ctrl+u to discard)"
            status.add_class("dirty")
        else:
            status.remove_class("dirty")
        status.update(text)
        if self.section.schema.spec("password"):
            self.query_one("#password-strength", Static).update(
                strength_text(record.get("password") or "", record.get("correo") or "")
            )

    def refresh_view(self) -> None:
        self.populate_table()
        self.update_editor()

    # ------------------------------------------------------------------
    # Editing events
    # ------------------------------------------------------------------

    def apply_edit(self, name: str, raw: Any) -> None:
        key = self.model.selection
        if key is None:
            return
        current = self.model.effective(key)
        if name in current and self.model.schema.coerce(name, raw) == current[name]:
            return
        self.model.edit(key, name, raw)
        self.mark_dirty(key)
        self.update_status()

    def _field_name(self, widget) -> Optional[str]:
        if not widget.has_class(FIELD_CLASS) or not widget.id:
            return None
        return widget.id.removeprefix("field-")

    def on_input_changed(self, event: Input.Changed) -> None:
        name = self._field_name(event.input)
        if name:
            self.apply_edit(name, event.value)

    def on_checkbox_changed(self, event: Checkbox.Changed) -> None:
        name = self._field_name(event.checkbox)
        if name:
            self.apply_edit(name, event.value)

    def on_select_changed(self, event: Select.Changed) -> None:
        name = self._field_name(event.select)
        if name and not event.select.is_blank():
            self.apply_edit(name, event.value)

    def on_data_table_row_selected(self, event: DataTable.RowSelected) -> None:
        """Enter or click on a row selects the record."""
        key = self._row_keys.get(event.row_key.value)
        if key is not None and key != self.model.selection:
            self.select_record(key)

    @work(group="editing")
    async def select_record(self, key: Hashable) -> None:
        result = await self.model.select(key)
        if result.status != CANCELLED:
            self.report(result)
        self.sync_cursor()
        self.update_editor()

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------

    def _require_selection(self) -> Optional[Hashable]:
        key = self.model.selection
        if key is None:
            self.notify("No record selected", severity="warning")
        return key

    @work(group="editing")
    async def action_save(self) -> None:
        """Save the selected record's draft."""
        key = self._require_selection()
        if key is None:
            return
        result = await self.model.save(key)
        if result.status == FAILED or result.ok:
            self.report(result, "Saved")
        else:
            self.notify(result.message, severity="information")
        self.refresh_view()

    @work(group="editing")
    async def action_discard(self) -> None:
        key = self._require_selection()
        if key is None:
            return
        result = await self.model.revert(key)
        if result.status == CANCELLED:
            return
        self.report(result, result.message)
        self.mark_dirty(key)
        self.update_editor()

    @work(group="editing")
    async def action_new_record(self) -> None:
        if self.section.singleton:
            self.notify(f"{self.section.display_name} has a single record", severity="warning")
            return
        choices = {spec.name: self.field_choices(spec.name) for spec in self.section.schema.fields}
        hint = ""
        if self.section.schema.spec("password"):
            hint = "Leave the password blank to have one generated."
        values = await self.push_screen_wait(
            CreateRecordScreen(self.section, {k: v for k, v in choices.items() if v}, hint)
        )
        if values is None:
            return
        result = await self.model.create(values)
        if not self.report(result, "Created"):
            return
        password = result.extra.get("passwordPlain")
        if password:
            await self.push_screen_wait(PasswordModal(result.record.get("correo", ""), password))
        self.populate_table()
        new_key = result.record.get("id")
        if new_key in self.model.records:
            self.report(await self.model.select(new_key))
        self.refresh_view()

    @work(group="editing")
    async def action_delete_record(self) -> None:
        if self.section.singleton:
            self.notify(f"{self.section.display_name} cannot be deleted", severity="warning")
            return
        if not self.section.deletable:
            self.notify(
                f"{self.section.display_name} items cannot be deleted. Clear Active to hide one.",
                severity="warning",
            )
            return
        key = self._require_selection()
        if key is None:
            return
        result = await self.model.delete(key)
        self.report(result, result.message)
        self.refresh_view()

    @work(group="editing")
    async def action_filter(self) -> None:
        if not self.section.filter_fields and not self.section.sort_options:
            self.notify(f"{self.section.display_name} has nothing to filter", severity="warning")
            return
        options = {name: self.filter_options(name) for name in self.section.filter_fields}
        municipalities = None
        if self.current_section == "locations":
            _, municipalities = location_meta(self.model.records.values())
        new_filter = await self.push_screen_wait(
            FilterScreen(self.section, self.model.filter, options, municipalities)
        )
        if new_filter is None:
            return
        result = await self.model.apply_filter(new_filter)
        if result.status == FAILED:
            self.report(result)
        self.refresh_view()

    @work(group="editing")
    async def action_change_section(self) -> None:
        name = await self.push_screen_wait(SectionSelectScreen(list(SECTIONS.values())))
        if name is None or name == self.current_section:
            return
        if not await self.model.guard_navigation("Switching sections discards unsaved changes."):
            return
        self.current_section = name
        self._update_subtitle()
        await self.load_section()
        self.notify(f"Switched to {self.section.display_name}", severity="information")

    @work(group="editing")
    async def action_reload(self) -> None:
        result = await self.model.reload()
        if result.status != CANCELLED:
            self.report(result)
        self.refresh_view()
        self.refresh_dashboard()

    @work(group="editing")
    async def action_upload_image(self) -> None:
        if self.section.image_target is None:
            self.notify(f"{self.section.display_name} has no images", severity="warning")
            return
        key = self._require_selection()
        if key is None:
            return
        path = await self.push_screen_wait(UploadImageScreen())
        if path is None:
            return
        result = await self.model.upload_image(key, path)
        self.report(result, result.message)
        self.mark_dirty(key)
        self.update_editor()

    @work(group="sales")
    async def action_sales(self) -> None:
        """Sales for the selected location, or for every store elsewhere."""
        key = self.model.selection
        try:
            if self.current_section == "locations" and key is not None:
                record = self.model.records[key]
                reports = await self.sales.dashboard(pv_id=record.get("id"))
                shift = self.shifts.get(str(record.get("id")))
                shift_report = await self.sales.shift_report(shift) if shift else None
                screen = SalesModal(self.section.schema.title(record), reports, shift, shift_report)
            else:
                reports = await self.sales.dashboard()
                screen = SalesModal("All stores", reports)
        except AdminError as e:
            self.notify(e.message, severity="error")
            if isinstance(e, NotAuthorizedError):
                self.reauthenticate()
            return
        self.push_screen(screen)

    @work(group="editing")
    async def action_reset_password(self) -> None:
        if self.current_section != "staff":
            return
        key = self._require_selection()
        if key is None:
            return
        record = self.model.records[key]
        ok = await self.confirm(
            ConfirmPrompt(
                "Reset password",
                f"Generate a new password for {record.get('correo')}? The current one stops working.",
                "Reset",
                "Cancel",
            )
        )
        if not ok:
            return
        try:
            password = await self.model.collection.reset_password(record["id"])
        except AdminError as e:
            self.report(Result.failed(e))
            return
        await self.push_screen_wait(PasswordModal(record.get("correo", ""), password))

    @work(group="editing")
    async def action_delete_category(self) -> None:
        if self.current_section != "menu":
            return
        tipo = self.model.filter.equals.get("tipo")
        if tipo is None and self.model.selection is not None:
            tipo = self.model.records[self.model.selection].get("tipo")
        if tipo is None:
            self.notify("Filter by a category or select a product first", severity="warning")
            return
        label = self.config.category_label(tipo)
        count = sum(1 for record in self.model.records.values() if str(record.get("tipo")) == str(tipo))
        collection = self.model.collection
        result = await self.model.delete_matching(
            "tipo",
            tipo,
            lambda: collection.delete_type(tipo),
            ConfirmPrompt(
                "Delete category",
                f'All {count} products in "{label}" and their images will be deleted. This cannot be undone.',
                "Yes, delete all",
                "Cancel",
            ),
        )
        self.report(result, result.message)
        self.refresh_view()

    @work(exclusive=True, group="session")
    async def action_sign_out(self) -> None:
        if not await self.model.guard_navigation("Signing out discards unsaved changes."):
            return
        try:
            await self.auth.logout()
        except AdminError as e:
            logger.warning("Logout failed: %s", e.message)
        self.notify("Signed out", severity="information")
        if not await self.sign_in():
            self.exit()
            return
        await self.load_section()

    def action_about(self) -> None:
        """Open the about screen."""
        self.push_screen(AboutScreen(self.config.base_url))

    async def action_quit(self) -> None:
        self.request_quit()

    @work(exclusive=True, group="quit")
    async def request_quit(self) -> None:
        if not await self.model.guard_navigation("Quitting discards unsaved changes."):
            return
        await self.api.aclose()
        self.exit()


def run():
    """Run the restaurant admin TUI."""
    config = load_config()
    setup_logging(config)
    app = RestaurantAdminApp(config)
    app.run()


def main():
    """Entry point."""
    run()


if __name__ == "__main__":
    main()
