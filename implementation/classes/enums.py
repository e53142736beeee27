"""
Enum classes for catalog data models.
"""

from enum import Enum


class MediaKind(str, Enum):
    """Catalog media discriminator. Values match the catalog API's path segment."""
    MOVIE = "movie"
    SERIES = "tv"

    @classmethod
    def from_string(cls, value: str | None) -> "MediaKind | None":
        """
        Convert a raw media type string to a MediaKind.
        Returns None for non-strings and strings that match no known kind.
        """
        if not isinstance(value, str) or not value:
            return None
        _map = {
            "movie": cls.MOVIE,
            "movies": cls.MOVIE,
            "tv": cls.SERIES,
            "series": cls.SERIES,
            "show": cls.SERIES,
        }
        return _map.get(value.strip().lower())

    def __str__(self) -> str:
        return self.value


class PopulationStatus(str, Enum):
    OK = "ok"
    SKIPPED = "skipped"
