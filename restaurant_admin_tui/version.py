"""Version management for restaurant-admin-tui."""

try:
    from ._version import version as __version__
except ImportError:
    # Fallback for development environments without git tags
    __version__ = "0.0.0.dev0"


def get_version() -> str:
    """Get the current version, without any local suffix."""
    return __version__.split("+")[0]
