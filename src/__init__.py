"""adacta: personal document archiving engine."""

from adacta.version import __version__

__all__ = ["__version__"]
