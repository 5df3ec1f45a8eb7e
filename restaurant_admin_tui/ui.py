"""UI screens for modals and secondary screens."""

from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

from textual.app import ComposeResult
from textual.binding import Binding
from textual.containers import Horizontal, ScrollableContainer, Vertical
from textual.screen import ModalScreen
from textual.widget import Widget
from textual.widgets import (
    Button,
    Checkbox,
    DataTable,
    Input,
    Label,
    ListItem,
    ListView,
    Select,
    Static,
)

from .editing import ConfirmPrompt, RecordFilter
from .passwords import score_password
from .sales import SalesReport, Shift, format_money, format_qty
from .schema import BOOL, FLAG, SECRET, FieldSpec
from .sections import Section

Choices = Dict[str, List[Tuple[str, Any]]]


def display_value(spec: FieldSpec, value: Any) -> Any:
    """Value as the field widget holds it."""
    if spec.kind in (FLAG, BOOL):
        return bool(value)
    if value is None:
        return ""
    return str(value)


def field_widget(spec: FieldSpec, value: Any, choices: Optional[List[Tuple[str, Any]]] = None, classes: str = "") -> Widget:
    """Build the input widget for one field.

    Flags become checkboxes, fields with a fixed set of values become
    selects, and everything else is a text input.
    """
    widget_id = f"field-{spec.name}"
    if spec.kind in (FLAG, BOOL):
        return Checkbox(spec.label, value=bool(value), id=widget_id, classes=classes)
    if choices:
        options = list(choices)
        if value not in (None, "") and value not in [option for _, option in options]:
            options.append((str(value), value))
        extra = {"value": value} if value not in (None, "") else {}
        return Select(options, prompt=f"Choose {spec.label.lower()}", id=widget_id, classes=classes, **extra)
    return Input(
        value=display_value(spec, value),
        placeholder=spec.label,
        password=spec.kind == SECRET,
        id=widget_id,
        classes=classes,
    )


def widget_value(widget: Widget) -> Any:
    if isinstance(widget, Select):
        return None if widget.is_blank() else widget.value
    return widget.value


class ConfirmScreen(ModalScreen[bool]):
    """Blocking yes/no question. Dismisses with True only on confirm."""

    BINDINGS = [
        Binding("escape", "cancel", "Cancel", show=False),
    ]

    CSS = """
    ConfirmScreen {
        align: center middle;
    }

    ConfirmScreen > Vertical {
        width: 60;
        height: auto;
        border: solid $warning;
        background: $panel;
        padding: 1 2;
    }

    #confirm-title {
        text-style: bold;
        margin-bottom: 1;
    }

    .button-group {
        margin-top: 1;
        height: auto;
    }
    """

    def __init__(self, prompt: ConfirmPrompt):
        super().__init__()
        self.prompt = prompt

    def compose(self) -> ComposeResult:
        yield Vertical(
            Static(self.prompt.title, id="confirm-title"),
            Static(self.prompt.description, markup=False),
            Horizontal(
                Button(self.prompt.confirm_label, id="confirm-btn", variant="error"),
                Button(self.prompt.cancel_label, id="cancel-btn"),
                classes="button-group",
            ),
        )

    def on_mount(self):
        self.query_one("#cancel-btn", Button).focus()

    def on_button_pressed(self, event: Button.Pressed) -> None:
        self.dismiss(event.button.id == "confirm-btn")

    def action_cancel(self):
        self.dismiss(False)


class CreateRecordScreen(ModalScreen[Optional[Dict[str, Any]]]):
    """Modal form for the fields of a new record."""

    BINDINGS = [
        Binding("ctrl+s", "submit", "Submit", show=True),
        Binding("escape", "cancel", "Cancel", show=True),
    ]

    CSS = """
    CreateRecordScreen {
        align: center middle;
    }

    CreateRecordScreen > ScrollableContainer {
        width: 70;
        height: auto;
        max-height: 90%;
        border: solid $accent;
        background: $panel;
    }

    #create-form {
        padding: 1 2;
        height: auto;
    }

    .form-label {
        text-style: bold;
    }

    .form-input {
        margin-bottom: 1;
    }

    .button-group {
        margin-top: 1;
        height: auto;
    }
    """

    def __init__(self, section: Section, choices: Optional[Choices] = None, hint: str = ""):
        """Initialize the create form.

        Args:
            section: Section whose schema drives the form
            choices: Allowed values for fields that have a fixed set
            hint: Extra line shown under the title
        """
        super().__init__()
        self.section = section
        self.choices = choices or {}
        self.hint = hint

    def compose(self) -> ComposeResult:
        widgets: List[Widget] = [Static(f"New {self.section.display_name} record", classes="form-label")]
        if self.hint:
            widgets.append(Static(self.hint))
        for spec in self.section.schema.fields:
            if spec.kind not in (FLAG, BOOL):
                widgets.append(Static(f"{spec.label}:", classes="form-label"))
            widgets.append(field_widget(spec, spec.default(), self.choices.get(spec.name), classes="form-input"))
        widgets.append(
            Horizontal(
                Button("Create", id="submit-btn", variant="primary"),
                Button("Cancel", id="cancel-btn"),
                classes="button-group",
            )
        )
        yield ScrollableContainer(Vertical(*widgets, id="create-form"))

    def on_mount(self):
        self.title = f"New {self.section.display_name}"
        first = self.query(".form-input").first()
        first.focus()

    def action_submit(self):
        values = {}
        for spec in self.section.schema.fields:
            values[spec.name] = widget_value(self.query_one(f"#field-{spec.name}"))
        self.dismiss(values)

    def action_cancel(self):
        self.dismiss(None)

    def on_button_pressed(self, event: Button.Pressed) -> None:
        if event.button.id == "submit-btn":
            self.action_submit()
        elif event.button.id == "cancel-btn":
            self.action_cancel()


class FilterScreen(ModalScreen[Optional[RecordFilter]]):
    """Search box plus one select per filterable field."""

    BINDINGS = [
        Binding("escape", "cancel", "Cancel", show=False),
    ]

    CSS = """
    FilterScreen {
        align: center middle;
    }

    FilterScreen > Vertical {
        width: 60;
        height: auto;
        border: solid $accent;
        background: $panel;
        padding: 1 2;
    }

    .form-label {
        text-style: bold;
    }

    .button-group {
        margin-top: 1;
        height: auto;
    }
    """

    def __init__(
        self,
        section: Section,
        current: RecordFilter,
        options: Choices,
        municipalities: Optional[Dict[str, List[str]]] = None,
    ):
        """Initialize the filter modal.

        Args:
            section: Section being filtered
            current: Filter in effect, used to prefill the form
            options: Choices for each filterable field
            municipalities: Municipalities per department, for locations
        """
        super().__init__()
        self.section = section
        self.current = current
        self.options = options
        self.municipalities = municipalities or {}

    def compose(self) -> ComposeResult:
        widgets: List[Widget] = [
            Static("Search:", classes="form-label"),
            Input(value=self.current.search, placeholder="Text to look for", id="search-input"),
        ]
        for name in self.section.filter_fields:
            spec = self.section.schema.spec(name)
            widgets.append(Static(f"{spec.label}:", classes="form-label"))
            options = self.options.get(name, [])
            value = self.current.equals.get(name)
            extra = {"value": value} if value in [option for _, option in options] else {}
            widgets.append(Select(options, prompt="All", id=f"filter-{name}", **extra))
        if self.section.sort_options:
            widgets.append(Static("Sort by:", classes="form-label"))
            extra = {}
            for index, option in enumerate(self.section.sort_options):
                if option.fields == self.current.sort_fields and option.descending == self.current.descending:
                    extra["value"] = index
            widgets.append(
                Select(
                    [(option.label, index) for index, option in enumerate(self.section.sort_options)],
                    prompt="Default",
                    id="sort-select",
                    **extra,
                )
            )
        widgets.append(
            Horizontal(
                Button("Apply", id="apply-btn", variant="primary"),
                Button("Clear", id="clear-btn"),
                Button("Cancel", id="cancel-btn"),
                classes="button-group",
            )
        )
        yield Vertical(*widgets)

    def on_mount(self):
        self.title = f"Filter {self.section.display_name}"
        self.query_one("#search-input", Input).focus()

    def on_select_changed(self, event: Select.Changed) -> None:
        if event.select.id != "filter-Departamento" or not self.municipalities:
            return
        municipality = self.query("#filter-Municipio")
        if not municipality:
            return
        if event.select.is_blank():
            names = sorted({name for names in self.municipalities.values() for name in names})
        else:
            names = self.municipalities.get(event.value, [])
        municipality.first(Select).set_options([(name, name) for name in names])

    def on_input_submitted(self, event: Input.Submitted) -> None:
        self.action_apply()

    def action_apply(self):
        equals = {}
        for name in self.section.filter_fields:
            value = widget_value(self.query_one(f"#filter-{name}", Select))
            if value is not None:
                equals[name] = value
        sort_fields = None
        descending = None
        if self.section.sort_options:
            index = widget_value(self.query_one("#sort-select", Select))
            if index is not None:
                option = self.section.sort_options[index]
                sort_fields, descending = option.fields, option.descending
        search = self.query_one("#search-input", Input).value
        self.dismiss(RecordFilter(search, equals, sort_fields, descending))

    def action_cancel(self):
        self.dismiss(None)

    def on_button_pressed(self, event: Button.Pressed) -> None:
        if event.button.id == "apply-btn":
            self.action_apply()
        elif event.button.id == "clear-btn":
            self.dismiss(RecordFilter())
        elif event.button.id == "cancel-btn":
            self.action_cancel()


class SectionSelectScreen(ModalScreen[Optional[str]]):
    """Modal screen for switching sections."""

    BINDINGS = [
        Binding("escape", "cancel", "Cancel", show=False),
    ]

    CSS = """
    SectionSelectScreen {
        align: center middle;
    }

    SectionSelectScreen > Vertical {
        width: 50;
        height: 15;
        border: solid $accent;
        background: $panel;
    }

    #section-list {
        height: 10;
    }
    """

    def __init__(self, sections: Sequence[Section]):
        super().__init__()
        self.sections = sections

    def compose(self) -> ComposeResult:
        yield Vertical(
            Static("Select Section", classes="title"),
            ListView(
                *[ListItem(Label(section.display_name), id=section.name) for section in self.sections],
                id="section-list",
            ),
        )

    def on_mount(self):
        self.title = "Change Section"
        self.query_one("#section-list", ListView).focus()

    def on_list_view_selected(self, event: ListView.Selected) -> None:
        if event.item and event.item.id:
            self.dismiss(event.item.id)

    def action_cancel(self):
        self.dismiss(None)


class UploadImageScreen(ModalScreen[Optional[Path]]):
    """Asks for the path of a local image file."""

    BINDINGS = [
        Binding("escape", "cancel", "Cancel", show=False),
    ]

    CSS = """
    UploadImageScreen {
        align: center middle;
    }

    UploadImageScreen > Vertical {
        width: 70;
        height: auto;
        border: solid $accent;
        background: $panel;
        padding: 1 2;
    }
    """

    def compose(self) -> ComposeResult:
        yield Vertical(
            Static("Upload image", classes="title"),
            Static("WEBP is recommended. JPG and PNG are accepted."),
            Input(placeholder="~/Pictures/product.webp", id="path-input"),
        )

    def on_mount(self):
        self.query_one("#path-input", Input).focus()

    def on_input_submitted(self, event: Input.Submitted) -> None:
        path = Path(event.value.strip()).expanduser()
        if not path.is_file():
            self.app.notify(f"No file at {path}", severity="warning")
            return
        self.dismiss(path)

    def action_cancel(self):
        self.dismiss(None)


class LoginScreen(ModalScreen[Optional[Tuple[str, str]]]):
    """Email and password prompt. Escape gives up and returns None."""

    BINDINGS = [
        Binding("escape", "cancel", "Cancel", show=False),
    ]

    CSS = """
    LoginScreen {
        align: center middle;
    }

    LoginScreen > Vertical {
        width: 50;
        height: auto;
        border: solid $accent;
        background: $panel;
        padding: 1 2;
    }
    """

    def compose(self) -> ComposeResult:
        yield Vertical(
            Static("Sign in", classes="title"),
            Input(placeholder="Email", id="email-input"),
            Input(placeholder="Password", password=True, id="password-input"),
            Button("Sign in", id="login-btn", variant="primary"),
        )

    def on_mount(self):
        self.query_one("#email-input", Input).focus()

    def _submit(self) -> None:
        email = self.query_one("#email-input", Input).value.strip()
        password = self.query_one("#password-input", Input).value
        if not email or not password:
            self.app.notify("Email and password are required", severity="warning")
            return
        self.dismiss((email, password))

    def on_input_submitted(self, event: Input.Submitted) -> None:
        if event.input.id == "email-input":
            self.query_one("#password-input", Input).focus()
        else:
            self._submit()

    def on_button_pressed(self, event: Button.Pressed) -> None:
        self._submit()

    def action_cancel(self):
        self.dismiss(None)


class PasswordModal(ModalScreen):
    """Shows a generated password once."""

    BINDINGS = [
        Binding("escape", "close", "Close", show=False),
    ]

    CSS = """
    PasswordModal {
        align: center middle;
    }

    PasswordModal > Vertical {
        width: 60;
        height: auto;
        border: solid $success;
        background: $panel;
        padding: 1 2;
    }

    #password-value {
        text-style: bold;
        margin: 1 0;
    }
    """

    def __init__(self, email: str, password: str):
        super().__init__()
        self.email = email
        self.password = password

    def compose(self) -> ComposeResult:
        score, label = score_password(self.password, self.email)
        yield Vertical(
            Static(f"New password for {self.email}", classes="title"),
            Static(self.password, id="password-value", markup=False),
            Static(f"Strength: {label} ({score}/100). It will not be shown again."),
            Horizontal(
                Button("Copy", id="copy-btn", variant="primary"),
                Button("Close", id="close-btn"),
            ),
        )

    def on_button_pressed(self, event: Button.Pressed) -> None:
        if event.button.id == "copy-btn":
            self.app.copy_to_clipboard(self.password)
            self.app.notify("Password copied", severity="information")
        else:
            self.action_close()

    def action_close(self):
        self.dismiss(None)


class SalesModal(ModalScreen):
    """Sales totals for the dashboard windows plus the top products."""

    BINDINGS = [
        Binding("escape", "close", "Close", show=False),
    ]

    CSS = """
    SalesModal {
        align: center middle;
    }

    SalesModal > ScrollableContainer {
        width: 80;
        height: auto;
        max-height: 90%;
        border: solid $accent;
        background: $panel;
        padding: 1 2;
    }

    .sales-title {
        text-style: bold;
        margin-bottom: 1;
    }

    #top-products {
        height: auto;
        max-height: 16;
    }
    """

    def __init__(
        self,
        title: str,
        reports: Dict[str, SalesReport],
        shift: Optional[Shift] = None,
        shift_report: Optional[SalesReport] = None,
    ):
        """Initialize the sales modal.

        Args:
            title: Heading, e.g. the location name
            reports: Report per window label, widest window last
            shift: Open shift at the location, if any
            shift_report: Sales since the shift opened
        """
        super().__init__()
        self.heading = title
        self.reports = reports
        self.shift = shift
        self.shift_report = shift_report

    def compose(self) -> ComposeResult:
        lines: List[Widget] = [Static(self.heading, classes="sales-title")]
        for label, report in self.reports.items():
            lines.append(Static(f"{label}: {format_money(report.revenue)}  ({format_qty(report.qty)} items)"))
        if self.shift is None:
            lines.append(Static("No active shift."))
        else:
            opened = self.shift.opened_at.strftime("%Y-%m-%d %H:%M") if self.shift.opened_at else "?"
            who = f" by {self.shift.admin_name}" if self.shift.admin_name else ""
            lines.append(Static(f"Shift open since {opened}{who}"))
            if self.shift_report is not None:
                lines.append(
                    Static(
                        f"This shift: {format_money(self.shift_report.revenue)}  "
                        f"({format_qty(self.shift_report.qty)} items)"
                    )
                )
        lines.append(Static("Top products", classes="sales-title"))
        lines.append(DataTable(id="top-products"))
        yield ScrollableContainer(Vertical(*lines))

    def on_mount(self):
        self.title = "Sales"
        table = self.query_one("#top-products", DataTable)
        table.cursor_type = "row"
        table.add_columns("Product", "Qty", "Revenue")
        if self.reports:
            widest = list(self.reports.values())[-1]
            for product in widest.top():
                table.add_row(product.name, format_qty(product.qty), format_money(product.revenue))

    def action_close(self):
        self.dismiss(None)


class AboutScreen(ModalScreen):
    """Modal screen displaying application information."""

    BINDINGS = [
        Binding("escape", "close", "Close", show=False),
    ]

    CSS = """
    AboutScreen {
        align: center middle;
    }

    AboutScreen > Vertical {
        width: 70;
        height: auto;
        border: solid $accent;
        background: $panel;
    }
    """

    def __init__(self, base_url: str):
        super().__init__()
        self.base_url = base_url

    def compose(self) -> ComposeResult:
        from .version import get_version

        yield Vertical(
            Static("Restaurant Admin TUI", classes="title"),
            Static(f"Version: {get_version()}"),
            Static(f"Backend: {self.base_url}"),
            Static("A terminal dashboard for the restaurant's menu, locations, landing page and staff."),
        )

    def on_mount(self):
        self.title = "About"

    def action_close(self):
        self.dismiss(None)


def strength_text(password: str, email: str = "") -> str:
    if not password:
        return "Leave the password blank to keep the current one."
    score, label = score_password(password, email)
    return f"Password strength: {label} ({score}/100)"
