"""Version of the flow-ix package."""

from __future__ import annotations

from importlib import metadata

# Bump together with pyproject.toml when publishing.
__version__ = "0.3.0"

_DIST = "flow-ix"


def version_info() -> str:
    """
    `__version__`, annotated with the installed distribution's version when the
    two disagree (e.g. a stale editable install).
    """
    try:
        installed = metadata.version(_DIST)
    except metadata.PackageNotFoundError:
        return __version__
    return __version__ if installed == __version__ else f"{__version__} (installed {installed})"


__all__ = ["__version__", "version_info"]
