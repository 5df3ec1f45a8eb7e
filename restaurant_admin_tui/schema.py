"""Typed field tables for every record type the dashboard edits.

Each entity has one schema. The editing model consults it both when an
operator types into a field (coercion) and when a draft is saved
(preparation and validation), so per-field rules live in one place.
"""

import math
import unicodedata
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

from .errors import ValidationError
from .passwords import validate_password_strong

TEXT = "text"
OPTIONAL_TEXT = "optional_text"
SECRET = "secret"
INT = "int"
NUMBER = "number"
COORDINATE = "coordinate"
FLAG = "flag"
BOOL = "bool"

_TRUTHY = {"1", "true", "yes", "on", "si", "sí", "y"}


def parse_number(value: Any) -> Optional[float]:
    """Parse a number the way a form field would, accepting comma decimals.

    Returns None for blanks and anything that is not a finite number.
    """
    if value is None:
        return None
    if isinstance(value, bool):
        return float(value)
    if isinstance(value, (int, float)):
        number = float(value)
    else:
        text = str(value).strip()
        if not text:
            return None
        if "," in text and "." not in text:
            text = text.replace(",", ".")
        try:
            number = float(text)
        except ValueError:
            return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def parse_flag(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in _TRUTHY
    return bool(value)


def sort_text(value: Any) -> str:
    """Case- and accent-insensitive key, so "Árbol" sorts next to "arroz"."""
    decomposed = unicodedata.normalize("NFKD", str(value or ""))
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return stripped.casefold()


def record_sort_key(record: Dict[str, Any], names: Tuple[str, ...]) -> tuple:
    key = []
    for name in names:
        value = record.get(name)
        if isinstance(value, str) or value is None:
            value = sort_text(value)
        key.append(value)
    return tuple(key)


@dataclass(frozen=True)
class FieldSpec:
    """A single editable field."""

    name: str
    label: str
    kind: str = TEXT
    required: bool = False
    positive: bool = False
    searchable: bool = False

    @property
    def write_only(self) -> bool:
        return self.kind == SECRET

    def default(self) -> Any:
        if self.kind in (TEXT, SECRET):
            return ""
        if self.kind in (OPTIONAL_TEXT, COORDINATE):
            return None
        if self.kind == BOOL:
            return True
        return 0

    def coerce(self, value: Any) -> Any:
        """Convert raw input to the field's type. Never fails."""
        if self.kind in (TEXT, SECRET):
            return "" if value is None else str(value)
        if self.kind == OPTIONAL_TEXT:
            return None if value is None else str(value)
        if self.kind == COORDINATE:
            return parse_number(value)
        if self.kind == FLAG:
            return 1 if parse_flag(value) else 0
        if self.kind == BOOL:
            return parse_flag(value)

        number = parse_number(value)
        if number is None:
            return 0
        if self.kind == INT or number.is_integer():
            return int(number)
        return number

    def prepare(self, value: Any) -> Any:
        """Commit-time normalization: trims text, blanks optional text to None."""
        value = self.coerce(value)
        if self.kind in (TEXT, SECRET):
            return value.strip()
        if self.kind == OPTIONAL_TEXT:
            if value is None:
                return None
            return value.strip() or None
        return value

    def check(self, value: Any) -> Optional[str]:
        if self.kind == COORDINATE and value is None:
            return f"{self.label} must be a number"
        if self.required and self.kind in (TEXT, OPTIONAL_TEXT) and not value:
            return f"{self.label} is required"
        if self.positive and (value is None or value <= 0):
            return f"{self.label} must be greater than 0"
        return None


RecordCheck = Callable[[Dict[str, Any]], Optional[Tuple[str, str]]]


@dataclass
class EntitySchema:
    """Field table plus list behaviour for one record type."""

    name: str
    fields: List[FieldSpec]
    title_field: str
    sort_fields: Tuple[str, ...] = ()
    image_field: Optional[str] = None
    sort_descending: bool = False
    checks: List[RecordCheck] = field(default_factory=list)
    # keys returned on create that are shown once and never cached
    transient_fields: Tuple[str, ...] = ()

    def __post_init__(self):
        self._by_name = {spec.name: spec for spec in self.fields}

    def spec(self, name: str) -> Optional[FieldSpec]:
        return self._by_name.get(name)

    @property
    def search_fields(self) -> List[str]:
        return [spec.name for spec in self.fields if spec.searchable]

    def coerce(self, name: str, value: Any) -> Any:
        """Coerce a value for ``name``; unknown fields pass through untouched."""
        spec = self.spec(name)
        return spec.coerce(value) if spec else value

    def blank(self) -> Dict[str, Any]:
        record = {"id": None}
        for spec in self.fields:
            if not spec.write_only:
                record[spec.name] = spec.default()
        return record

    def normalize(self, raw: Dict[str, Any]) -> Dict[str, Any]:
        """Shape a server row into a cached record with typed values."""
        record = dict(raw)
        for spec in self.fields:
            if spec.write_only:
                record.pop(spec.name, None)
            elif spec.name in record:
                record[spec.name] = spec.coerce(record[spec.name])
            else:
                record[spec.name] = spec.default()
        return record

    def prepare(self, record: Dict[str, Any]) -> Dict[str, Any]:
        """Build the payload submitted on save."""
        payload = {}
        for key, value in record.items():
            spec = self.spec(key)
            if spec is None:
                payload[key] = value
                continue
            value = spec.prepare(value)
            if spec.write_only and not value:
                continue
            payload[key] = value
        return payload

    def validate(self, payload: Dict[str, Any]) -> None:
        """Raise ValidationError for the first failing field."""
        for spec in self.fields:
            if spec.write_only:
                continue
            message = spec.check(payload.get(spec.name))
            if message:
                raise ValidationError(spec.name, message)
        for check in self.checks:
            failure = check(payload)
            if failure:
                raise ValidationError(*failure)

    def sort_key(self, record: Dict[str, Any]) -> tuple:
        return record_sort_key(record, self.sort_fields)

    def search_text(self, record: Dict[str, Any]) -> str:
        parts = [str(record.get("id", ""))]
        parts.extend(str(record.get(name) or "") for name in self.search_fields)
        return sort_text(" ".join(parts))

    def title(self, record: Dict[str, Any]) -> str:
        value = record.get(self.title_field)
        return str(value) if value else f"#{record.get('id')}"


def _staff_password(payload: Dict[str, Any]) -> Optional[Tuple[str, str]]:
    password = payload.get("password")
    if not password:
        return None
    message = validate_password_strong(password, payload.get("correo", ""))
    return ("password", message) if message else None


MENU_SCHEMA = EntitySchema(
    name="menu",
    fields=[
        FieldSpec("Nombre", "Name", required=True, searchable=True),
        FieldSpec("Descripcion", "Description", required=True, searchable=True),
        FieldSpec("tipo", "Category", kind=INT, positive=True),
        FieldSpec("Activo", "Active", kind=FLAG),
        FieldSpec("PrecioOriente", "Price (east)", kind=NUMBER),
        FieldSpec("PrecioAreaMetrop", "Price (metro area)", kind=NUMBER),
        FieldSpec("PrecioRestoPais", "Price (rest of country)", kind=NUMBER),
        FieldSpec("Cantidad", "Quantity", kind=NUMBER),
        FieldSpec("imagen", "Image URL"),
    ],
    title_field="Nombre",
    sort_fields=("Nombre",),
    image_field="imagen",
)

LOCATION_SCHEMA = EntitySchema(
    name="locations",
    fields=[
        FieldSpec("Departamento", "Department", required=True, searchable=True),
        FieldSpec("Municipio", "Municipality", required=True, searchable=True),
        FieldSpec("Direccion", "Address", required=True, searchable=True),
        FieldSpec("Barrio", "Neighborhood", required=True, searchable=True),
        FieldSpec("Latitud", "Latitude", kind=COORDINATE),
        FieldSpec("Longitud", "Longitude", kind=COORDINATE),
        FieldSpec("num_whatsapp", "WhatsApp", kind=OPTIONAL_TEXT),
        FieldSpec("URL_image", "Image URL", kind=OPTIONAL_TEXT),
    ],
    title_field="Barrio",
    sort_fields=("Departamento", "Municipio", "Barrio"),
    image_field="URL_image",
)

HERO_SCHEMA = EntitySchema(
    name="hero",
    fields=[
        FieldSpec("title", "Title", required=True, searchable=True),
        FieldSpec("description", "Description", required=True, searchable=True),
        FieldSpec("tag", "Tag", kind=OPTIONAL_TEXT, searchable=True),
        FieldSpec("image_url", "Image URL", required=True),
        FieldSpec("order_index", "Order", kind=INT),
        FieldSpec("is_active", "Active", kind=BOOL),
    ],
    title_field="title",
    sort_fields=("order_index",),
    image_field="image_url",
)

INSTAGRAM_SCHEMA = EntitySchema(
    name="instagram",
    fields=[
        FieldSpec("image_url", "Image URL", required=True),
        FieldSpec("caption", "Caption", kind=OPTIONAL_TEXT, searchable=True),
        FieldSpec("href", "Link", kind=OPTIONAL_TEXT, searchable=True),
        FieldSpec("order_index", "Order", kind=INT),
        FieldSpec("is_active", "Active", kind=BOOL),
    ],
    title_field="caption",
    sort_fields=("order_index",),
    image_field="image_url",
)

ABOUT_SCHEMA = EntitySchema(
    name="about",
    fields=[
        FieldSpec("title", "Title", required=True),
        FieldSpec("tagline", "Tagline", kind=OPTIONAL_TEXT),
        FieldSpec("body", "Body"),
        FieldSpec("image_url", "Image URL", required=True),
        FieldSpec("badge_text", "Badge", kind=OPTIONAL_TEXT),
        FieldSpec("cta_text", "Button text"),
        FieldSpec("cta_href", "Button link"),
        FieldSpec("instagram_handle", "Instagram handle", kind=OPTIONAL_TEXT),
    ],
    title_field="title",
    image_field="image_url",
)

STAFF_SCHEMA = EntitySchema(
    name="staff",
    fields=[
        FieldSpec("administrador", "Manager", required=True, searchable=True),
        FieldSpec("correo", "Email", required=True, searchable=True),
        FieldSpec("PuntoVenta", "Store", required=True, searchable=True),
        FieldSpec("password", "New password", kind=SECRET),
    ],
    title_field="correo",
    sort_fields=("id",),
    sort_descending=True,
    checks=[_staff_password],
    transient_fields=("passwordPlain",),
)
