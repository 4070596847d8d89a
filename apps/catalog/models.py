from typing import List, Set, Tuple
from enum import Enum
from pydantic import BaseModel, Field
from apps.core.models import MovieRecord

MOVIES_PER_PAGE_MOBILE = 12
MOVIES_PER_PAGE_DESKTOP = 15

class RuntimeFilter(str, Enum):
    ALL = "all"
    SHORT = "short"              # <= 90 min
    MEDIUM = "medium"            # 91-150 min
    LONG = "long"                # > 150 min
    ONE_SEASON = "oneSeason"
    MULTI_SEASON = "multiSeason"

class SortOption(str, Enum):
    DATE_ADDED = "dateAdded"               # newest first (by id)
    DATE_ADDED_LATEST = "dateAddedLatest"  # oldest first (by id)
    TITLE = "title"
    YEAR = "year"
    IMDB_RATING = "imdbRating"
    USER_RATING = "userRating"
    COMMUNITY_RATING = "communityRating"

class ViewParams(BaseModel):
    selected_genres: Set[str] = Field(default_factory=set)
    selected_years: Set[int] = Field(default_factory=set)
    search_query: str = ""
    imdb_rating_range: Tuple[float, float] = (0.0, 10.0)
    runtime_filter: RuntimeFilter = RuntimeFilter.ALL
    selected_tags: Set[str] = Field(default_factory=set)
    sort_by: SortOption = SortOption.DATE_ADDED
    page: int = 1
    page_size: int = MOVIES_PER_PAGE_DESKTOP

    def filter_key(self) -> tuple:
        """Everything except paging; a change here means page goes back to 1."""
        return (
            frozenset(self.selected_genres),
            frozenset(self.selected_years),
            self.search_query,
            tuple(self.imdb_rating_range),
            self.runtime_filter,
            frozenset(self.selected_tags),
        )

class CatalogView(BaseModel):
    movies: List[MovieRecord]
    page: int
    page_count: int
    total: int

    def to_wire(self) -> dict:
        return {
            "movies": [m.to_wire() for m in self.movies],
            "page": self.page,
            "pageCount": self.page_count,
            "total": self.total,
        }

class RuntimeRepairReport(BaseModel):
    updated: int = 0
    errors: int = 0
    skipped: int = 0
