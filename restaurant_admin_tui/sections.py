"""Section definitions: which record types the dashboard edits and how."""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from .api import (
    AboutCollection,
    ApiClient,
    ListCollection,
    MenuCollection,
    RestCollection,
    StaffCollection,
)
from .editing import ImageTarget, ResourceCollection
from .schema import (
    ABOUT_SCHEMA,
    HERO_SCHEMA,
    INSTAGRAM_SCHEMA,
    LOCATION_SCHEMA,
    MENU_SCHEMA,
    STAFF_SCHEMA,
    EntitySchema,
    sort_text,
)


@dataclass
class SortOption:
    label: str
    fields: Tuple[str, ...]
    descending: bool = False


@dataclass
class Section:
    """One editable area of the dashboard.

    Stores only what the TUI needs to lay the section out:
    - identification and the record schema
    - list columns and filterable fields
    - where its images are stored
    """

    name: str
    display_name: str
    schema: EntitySchema
    collection: Callable[[ApiClient], ResourceCollection]
    columns: List[Tuple[str, str]] = field(default_factory=list)
    filter_fields: List[str] = field(default_factory=list)
    sort_options: List[SortOption] = field(default_factory=list)
    image_target: Optional[ImageTarget] = None
    singleton: bool = False
    # the backend offers no way to remove records of this section
    deletable: bool = True

    def has_field(self, name: str) -> bool:
        return self.schema.spec(name) is not None


def _rest(path: str) -> Callable[[ApiClient], ResourceCollection]:
    return lambda api: RestCollection(api, path)


def _landing_list(path: str) -> Callable[[ApiClient], ResourceCollection]:
    return lambda api: ListCollection(api, path)


SECTIONS: Dict[str, Section] = {
    section.name: section
    for section in [
        Section(
            name="menu",
            display_name="Menu",
            schema=MENU_SCHEMA,
            collection=MenuCollection,
            columns=[("id", "ID"), ("Nombre", "Name"), ("tipo", "Category"), ("Activo", "Active")],
            filter_fields=["tipo", "Activo"],
            image_target=ImageTarget(scope="imagen_productos", slot="productosimage", key_prefix="menu-id"),
        ),
        Section(
            name="locations",
            display_name="Locations",
            schema=LOCATION_SCHEMA,
            collection=_rest("/api/admin/pv"),
            columns=[("id", "ID"), ("Barrio", "Neighborhood"), ("Municipio", "Municipality")],
            filter_fields=["Departamento", "Municipio"],
            image_target=ImageTarget(scope="puntos_venta"),
        ),
        Section(
            name="hero",
            display_name="Landing hero",
            schema=HERO_SCHEMA,
            collection=_landing_list("/api/admin/landing/hero"),
            columns=[("order_index", "#"), ("title", "Title"), ("is_active", "Active")],
            filter_fields=["is_active"],
            image_target=ImageTarget(scope="hero"),
            deletable=False,
        ),
        Section(
            name="instagram",
            display_name="Instagram",
            schema=INSTAGRAM_SCHEMA,
            collection=_landing_list("/api/admin/landing/instagram"),
            columns=[("order_index", "#"), ("caption", "Caption"), ("is_active", "Active")],
            filter_fields=["is_active"],
            image_target=ImageTarget(scope="instagram"),
            deletable=False,
        ),
        Section(
            name="about",
            display_name="About block",
            schema=ABOUT_SCHEMA,
            collection=AboutCollection,
            columns=[("title", "Title")],
            image_target=ImageTarget(scope="about", fixed_key="about-main"),
            singleton=True,
            deletable=False,
        ),
        Section(
            name="staff",
            display_name="Kitchen staff",
            schema=STAFF_SCHEMA,
            collection=StaffCollection,
            columns=[("id", "ID"), ("administrador", "Manager"), ("PuntoVenta", "Store")],
            filter_fields=["PuntoVenta"],
            sort_options=[
                SortOption("Newest first", ("id",), descending=True),
                SortOption("Oldest first", ("id",)),
                SortOption("Email", ("correo",)),
                SortOption("Store", ("PuntoVenta", "correo")),
            ],
        ),
    ]
}

DEFAULT_SECTION = "menu"


def distinct_values(records: Iterable[Dict[str, Any]], name: str) -> List[Any]:
    """Distinct non-blank values of one field, sorted accent-insensitively."""
    values = {record.get(name) for record in records}
    values.discard(None)
    values.discard("")
    return sorted(values, key=lambda value: (sort_text(value), str(value)))


def location_meta(records: Iterable[Dict[str, Any]]) -> Tuple[List[str], Dict[str, List[str]]]:
    """Departments and the municipalities of each one, from loaded locations."""
    by_department: Dict[str, set] = {}
    for record in records:
        department = str(record.get("Departamento") or "").strip()
        municipality = str(record.get("Municipio") or "").strip()
        if not department:
            continue
        municipalities = by_department.setdefault(department, set())
        if municipality:
            municipalities.add(municipality)
    departments = sorted(by_department, key=sort_text)
    return departments, {
        department: sorted(by_department[department], key=sort_text)
        for department in departments
    }
