"""Secret resolution and injection planning for deployment units."""

__version__ = "0.1.0"
