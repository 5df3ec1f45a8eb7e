"""Configuration loader for the restaurant admin TUI.

Settings live in a ``[tool.restaurant-admin]`` table of the working
directory's pyproject.toml. Two environment variables override the file so
a session token never has to be written to disk.
"""

import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

BASE_URL_ENV = "RESTAURANT_ADMIN_BASE_URL"
SESSION_ENV = "RESTAURANT_ADMIN_SESSION"

DEFAULT_CATEGORIES = {
    1: "Hamburguesas",
    2: "Adiciones",
    3: "Combos",
    4: "Papas",
    6: "Bebidas",
}


@dataclass
class AdminConfig:
    base_url: str = "http://localhost:3000"
    session_cookie: str = "admin_session"
    session_token: Optional[str] = None
    timeout: float = 15.0
    refresh_interval: float = 60.0
    fallback_image: str = "/img/mensaje-error.png"
    log_level: str = "INFO"
    log_file: Optional[Path] = None
    categories: Dict[int, str] = field(default_factory=lambda: dict(DEFAULT_CATEGORIES))

    def category_label(self, tipo: Any) -> str:
        try:
            return self.categories.get(int(tipo), f"Category {tipo}")
        except (TypeError, ValueError):
            return f"Category {tipo}"


class ConfigLoader:
    """Reads :class:`AdminConfig` from pyproject.toml and the environment."""

    def __init__(self, project_root: Optional[Path] = None, environ: Optional[Mapping[str, str]] = None):
        """Initialize the loader.

        Args:
            project_root: Directory holding pyproject.toml.
                         Defaults to current working directory.
            environ: Environment mapping, defaults to ``os.environ``.
        """
        self.project_root = project_root or Path.cwd()
        self.pyproject_path = self.project_root / "pyproject.toml"
        self.environ = os.environ if environ is None else environ

    def read_table(self) -> Dict[str, Any]:
        """Return the ``[tool.restaurant-admin]`` table, or {} when absent."""
        if not self.pyproject_path.exists():
            return {}
        with open(self.pyproject_path, "rb") as f:
            pyproject = tomllib.load(f)
        return pyproject.get("tool", {}).get("restaurant-admin", {})

    def load(self) -> AdminConfig:
        """Build the effective configuration.

        Returns:
            The merged AdminConfig

        Raises:
            ValueError: If a configured value has the wrong type
        """
        table = self.read_table()
        config = AdminConfig()

        for key in ("base_url", "session_cookie", "session_token", "fallback_image", "log_level"):
            if key in table:
                value = table[key]
                if not isinstance(value, str):
                    raise ValueError(f"[tool.restaurant-admin] {key} must be a string, got {value!r}")
                setattr(config, key, value)

        for key in ("timeout", "refresh_interval"):
            if key in table:
                value = table[key]
                if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
                    raise ValueError(
                        f"[tool.restaurant-admin] {key} must be a positive number, got {value!r}"
                    )
                setattr(config, key, float(value))

        if table.get("log_file"):
            log_file = Path(table["log_file"])
            config.log_file = log_file if log_file.is_absolute() else self.project_root / log_file

        if "categories" in table:
            config.categories = self._parse_categories(table["categories"])

        base_url = self.environ.get(BASE_URL_ENV)
        if base_url:
            config.base_url = base_url
        token = self.environ.get(SESSION_ENV)
        if token:
            config.session_token = token

        config.base_url = config.base_url.rstrip("/")
        config.log_level = config.log_level.upper()
        return config

    @staticmethod
    def _parse_categories(table: Any) -> Dict[int, str]:
        if not isinstance(table, dict):
            raise ValueError("[tool.restaurant-admin.categories] must be a table of id = \"label\"")
        categories = {}
        for key, label in table.items():
            try:
                tipo = int(key)
            except ValueError:
                raise ValueError(f"Category id {key!r} is not an integer") from None
            if tipo <= 0:
                raise ValueError(f"Category id {tipo} must be greater than 0")
            categories[tipo] = str(label)
        return categories


def load_config(project_root: Optional[Path] = None) -> AdminConfig:
    return ConfigLoader(project_root).load()
