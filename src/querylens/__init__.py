"""Interactive query refinement for boolean literature-search queries."""

from importlib import metadata


def get_version() -> str:
    try:
        return metadata.version("querylens")
    except metadata.PackageNotFoundError:
        return "0.0.0"


__all__ = ["get_version"]
