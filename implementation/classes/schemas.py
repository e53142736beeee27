"""
Pydantic schemas for the records kept in the rating cache.

Records are stored in the remote tier as JSON using camelCase field names
(rating/updatedAt, imdbId/updatedAt, dayIndex/lastRunDate/moviePage/tvPage)
so values written by older deployments stay readable.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class RatingRecord(BaseModel):
    """A single external rating, keyed by IMDb ID."""
    model_config = ConfigDict(populate_by_name=True)

    rating: float = Field(..., ge=0, le=10)
    updated_at: int = Field(..., alias="updatedAt", description="Epoch milliseconds.")


class IdMappingRecord(BaseModel):
    """
    Catalog ID -> IMDb ID mapping.

    imdb_id is None when the catalog confirmed the title has no IMDb ID
    (known-absent). A missing record means the title was never looked up.
    """
    model_config = ConfigDict(populate_by_name=True)

    imdb_id: Optional[str] = Field(None, alias="imdbId")
    updated_at: int = Field(..., alias="updatedAt", description="Epoch milliseconds.")

    @property
    def is_known_absent(self) -> bool:
        return not self.imdb_id


class CycleState(BaseModel):
    """Resumable progress of the population job. One instance for the whole pipeline."""
    model_config = ConfigDict(populate_by_name=True)

    day_index: int = Field(..., alias="dayIndex", ge=0)
    last_run_date: Optional[str] = Field(None, alias="lastRunDate")
    movie_page: int = Field(1, alias="moviePage", ge=1)
    tv_page: int = Field(1, alias="tvPage", ge=1)
