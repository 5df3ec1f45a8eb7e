"""Pytest tests for field coercion, preparation and validation.

Tests cover:
- Coercion of raw widget input per field kind
- Commit-time preparation (trimming, optional text, write-only fields)
- Validation messages and record-level checks
- Search text and sort keys
"""

import pytest

from restaurant_admin_tui.errors import ValidationError
from restaurant_admin_tui.schema import (
    BOOL,
    COORDINATE,
    FLAG,
    INT,
    LOCATION_SCHEMA,
    MENU_SCHEMA,
    NUMBER,
    OPTIONAL_TEXT,
    STAFF_SCHEMA,
    FieldSpec,
    parse_number,
    sort_text,
)


# ============================================================================
# Coercion
# ============================================================================


class TestCoercion:
    @pytest.mark.parametrize(
        "value,expected",
        [("12", 12.0), ("12,5", 12.5), (" 3.25 ", 3.25), ("", None), ("abc", None), ("nan", None), (7, 7.0)],
    )
    def test_parse_number(self, value, expected):
        assert parse_number(value) == expected

    def test_int_field(self):
        spec = FieldSpec("tipo", "Category", kind=INT)
        assert spec.coerce("4") == 4
        assert spec.coerce("4.9") == 4
        assert spec.coerce("x") == 0

    def test_number_field_keeps_integers_integral(self):
        spec = FieldSpec("Cantidad", "Quantity", kind=NUMBER)
        assert spec.coerce("5") == 5
        assert isinstance(spec.coerce("5"), int)
        assert spec.coerce("2,5") == 2.5

    def test_flag_field(self):
        spec = FieldSpec("Activo", "Active", kind=FLAG)
        assert spec.coerce(True) == 1
        assert spec.coerce("sí") == 1
        assert spec.coerce("0") == 0
        assert spec.coerce(None) == 0

    def test_bool_field(self):
        spec = FieldSpec("is_active", "Active", kind=BOOL)
        assert spec.coerce("true") is True
        assert spec.coerce(0) is False

    def test_coordinate_blank_is_none(self):
        spec = FieldSpec("Latitud", "Latitude", kind=COORDINATE)
        assert spec.coerce("") is None
        assert spec.coerce("6,2442") == 6.2442

    def test_optional_text_keeps_none(self):
        spec = FieldSpec("tag", "Tag", kind=OPTIONAL_TEXT)
        assert spec.coerce(None) is None
        assert spec.prepare("   ") is None
        assert spec.prepare(" new ") == "new"

    def test_unknown_field_passes_through(self):
        assert MENU_SCHEMA.coerce("whatever", [1, 2]) == [1, 2]


# ============================================================================
# Preparation and Validation
# ============================================================================


class TestPrepare:
    def test_blank_password_is_not_sent(self):
        payload = STAFF_SCHEMA.prepare(
            {"administrador": "Ana", "correo": "a@b.co", "PuntoVenta": "X", "password": "  "}
        )
        assert "password" not in payload

    def test_password_is_never_cached(self):
        record = STAFF_SCHEMA.normalize({"id": 1, "correo": "a@b.co", "password": "hash"})
        assert "password" not in record

    def test_normalize_fills_defaults(self):
        record = MENU_SCHEMA.normalize({"id": 1, "Nombre": "Burger"})
        assert record["Descripcion"] == ""
        assert record["Activo"] == 0
        assert record["PrecioOriente"] == 0

    def test_blank_record(self):
        record = STAFF_SCHEMA.blank()
        assert record == {"id": None, "administrador": "", "correo": "", "PuntoVenta": ""}


class TestValidate:
    def valid_location(self, **overrides):
        record = {
            "Departamento": "Antioquia",
            "Municipio": "Rionegro",
            "Direccion": "Calle 1",
            "Barrio": "Centro",
            "Latitud": 6.15,
            "Longitud": -75.37,
        }
        record.update(overrides)
        return record

    def test_valid_location(self):
        LOCATION_SCHEMA.validate(self.valid_location())

    def test_required_text(self):
        with pytest.raises(ValidationError) as exc_info:
            LOCATION_SCHEMA.validate(self.valid_location(Barrio=""))

        assert exc_info.value.field == "Barrio"
        assert exc_info.value.message == "Neighborhood is required"

    def test_coordinates_must_be_numbers(self):
        with pytest.raises(ValidationError) as exc_info:
            LOCATION_SCHEMA.validate(self.valid_location(Longitud=None))

        assert exc_info.value.message == "Longitude must be a number"

    def test_positive_category(self):
        with pytest.raises(ValidationError) as exc_info:
            MENU_SCHEMA.validate({"Nombre": "A", "Descripcion": "B", "tipo": 0})

        assert exc_info.value.message == "Category must be greater than 0"

    def test_staff_password_check(self):
        with pytest.raises(ValidationError) as exc_info:
            STAFF_SCHEMA.validate(
                {"administrador": "Ana", "correo": "a@b.co", "PuntoVenta": "X", "password": "weak"}
            )

        assert exc_info.value.field == "password"


# ============================================================================
# Search and Sort
# ============================================================================


class TestSearchAndSort:
    def test_sort_text_folds_accents_and_case(self):
        assert sort_text("Árbol") == "arbol"
        assert sort_text(None) == ""

    def test_search_text_includes_id_and_searchable_fields(self):
        text = MENU_SCHEMA.search_text({"id": 12, "Nombre": "Limonada", "Descripcion": "Fría", "imagen": "x.webp"})

        assert "12" in text
        assert "fria" in text
        assert "x.webp" not in text

    def test_location_sort_key(self):
        rows = [
            {"Departamento": "Cundinamarca", "Municipio": "Chía", "Barrio": "B"},
            {"Departamento": "Antioquia", "Municipio": "Rionegro", "Barrio": "A"},
            {"Departamento": "Antioquia", "Municipio": "Envigado", "Barrio": "Z"},
        ]

        ordered = sorted(rows, key=LOCATION_SCHEMA.sort_key)

        assert [row["Municipio"] for row in ordered] == ["Envigado", "Rionegro", "Chía"]

    def test_title_falls_back_to_id(self):
        assert MENU_SCHEMA.title({"id": 4, "Nombre": ""}) == "#4"
