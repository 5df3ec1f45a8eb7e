"""Pytest tests for section definitions and list helpers."""

from restaurant_admin_tui.api import ApiClient, ListCollection
from restaurant_admin_tui.schema import STAFF_SCHEMA
from restaurant_admin_tui.sections import (
    DEFAULT_SECTION,
    SECTIONS,
    distinct_values,
    location_meta,
)


class TestSections:
    def test_default_section_exists(self):
        assert DEFAULT_SECTION in SECTIONS

    def test_columns_and_filters_are_known_fields(self):
        for section in SECTIONS.values():
            for name in section.filter_fields:
                assert section.has_field(name), (section.name, name)
            for name, _label in section.columns:
                assert name == "id" or section.has_field(name), (section.name, name)

    def test_image_sections_have_image_fields(self):
        for section in SECTIONS.values():
            if section.image_target is not None:
                assert section.schema.image_field, section.name

    def test_about_is_a_singleton_with_fixed_key(self):
        about = SECTIONS["about"]
        assert about.singleton
        assert about.image_target.fixed_key == "about-main"

    def test_staff_sorts_newest_first(self):
        staff = SECTIONS["staff"]
        assert staff.schema is STAFF_SCHEMA
        assert staff.sort_options[0].descending

    def test_landing_lists_use_whole_list_collection(self):
        api = ApiClient("http://admin.test")
        for name in ("hero", "instagram"):
            section = SECTIONS[name]
            collection = section.collection(api)
            assert isinstance(collection, ListCollection)
            assert collection.path == f"/api/admin/landing/{name}"
            assert not section.deletable

    def test_rest_sections_can_delete(self):
        assert SECTIONS["menu"].deletable
        assert SECTIONS["staff"].deletable


class TestHelpers:
    def test_distinct_values(self):
        records = [{"PuntoVenta": "Laureles"}, {"PuntoVenta": ""}, {"PuntoVenta": "Álamos"}, {}, {"PuntoVenta": "Laureles"}]

        assert distinct_values(records, "PuntoVenta") == ["Álamos", "Laureles"]

    def test_location_meta(self):
        records = [
            {"Departamento": "Antioquia", "Municipio": "Rionegro"},
            {"Departamento": "Antioquia", "Municipio": "Envigado"},
            {"Departamento": " Cundinamarca ", "Municipio": "Chía"},
            {"Departamento": "", "Municipio": "Nowhere"},
            {"Departamento": "Antioquia", "Municipio": ""},
        ]

        departments, municipalities = location_meta(records)

        assert departments == ["Antioquia", "Cundinamarca"]
        assert municipalities == {
            "Antioquia": ["Envigado", "Rionegro"],
            "Cundinamarca": ["Chía"],
        }
