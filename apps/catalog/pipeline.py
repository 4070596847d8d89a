"""
Catalog view pipeline: filter, sort and paginate a movie collection.

Everything here is a pure function of its inputs. Resetting the page to 1
when a filter changes is up to the caller (see ViewParams.filter_key).
"""
import math
import re
import unicodedata
from typing import Iterable, List, Optional, Sequence, Tuple
from apps.core.models import MovieRecord
from apps.catalog.models import ViewParams, RuntimeFilter, SortOption, CatalogView

_FIRST_NUMBER = re.compile(r"(\d+)")
_SEASON_COUNT = re.compile(r"(\d+)\s+Season")

RECENT_MOVIES_COUNT = 8

# --- Runtime helpers ---

def parse_runtime_minutes(runtime: Optional[str]) -> int:
    """First integer in the runtime string, 0 when there is none."""
    if not runtime:
        return 0
    match = _FIRST_NUMBER.search(runtime)
    return int(match.group(1)) if match else 0

def is_season_entry(runtime: Optional[str]) -> bool:
    return bool(runtime) and "season" in runtime.lower()

def matches_runtime(runtime: Optional[str], runtime_filter: RuntimeFilter) -> bool:
    if runtime_filter == RuntimeFilter.ALL:
        return True

    minutes = parse_runtime_minutes(runtime)
    season = is_season_entry(runtime)

    if runtime_filter == RuntimeFilter.SHORT:
        return not season and 0 < minutes <= 90
    if runtime_filter == RuntimeFilter.MEDIUM:
        return not season and 90 < minutes <= 150
    if runtime_filter == RuntimeFilter.LONG:
        return not season and minutes > 150
    if runtime_filter == RuntimeFilter.ONE_SEASON:
        return season and ("1 Season" in runtime or runtime == "1 Seasons")
    if runtime_filter == RuntimeFilter.MULTI_SEASON:
        match = _SEASON_COUNT.search(runtime or "")
        return season and match is not None and int(match.group(1)) > 1
    return False

# --- Filtering ---

def matches(movie: MovieRecord, params: ViewParams) -> bool:
    if params.selected_genres and movie.genre not in params.selected_genres:
        return False
    if params.selected_years and movie.year not in params.selected_years:
        return False

    if params.search_query:
        needle = params.search_query.lower()
        if needle not in movie.title.lower() and needle not in (movie.description or "").lower():
            return False

    lo, hi = params.imdb_rating_range
    if not lo <= movie.external_rating <= hi:
        return False

    if not matches_runtime(movie.runtime, params.runtime_filter):
        return False

    if params.selected_tags and not params.selected_tags.intersection(movie.tags):
        return False

    return True

def filter_movies(movies: Iterable[MovieRecord], params: ViewParams) -> List[MovieRecord]:
    return [m for m in movies if matches(m, params)]

# --- Sorting ---

def title_key(title: str) -> Tuple[str, str]:
    # Accent- and case-insensitive first, exact text as tie-break
    folded = unicodedata.normalize("NFKD", title)
    folded = "".join(c for c in folded if not unicodedata.combining(c)).casefold()
    return folded, title

def sort_movies(movies: Iterable[MovieRecord], sort_by: SortOption) -> List[MovieRecord]:
    """Stable sort; records that compare equal keep their filtered order."""
    movies = list(movies)

    if sort_by == SortOption.DATE_ADDED:
        # Ordered by id, not by the dateAdded timestamp
        return sorted(movies, key=lambda m: m.id, reverse=True)
    if sort_by == SortOption.DATE_ADDED_LATEST:
        return sorted(movies, key=lambda m: m.id)
    if sort_by == SortOption.TITLE:
        return sorted(movies, key=lambda m: title_key(m.title))
    if sort_by == SortOption.YEAR:
        return sorted(movies, key=lambda m: m.year, reverse=True)
    if sort_by == SortOption.IMDB_RATING:
        return sorted(movies, key=lambda m: m.external_rating, reverse=True)
    if sort_by == SortOption.USER_RATING:
        return sorted(movies, key=lambda m: m.user_rating or 0, reverse=True)
    if sort_by == SortOption.COMMUNITY_RATING:
        return sorted(movies, key=lambda m: m.community_rating or 0, reverse=True)
    return movies

# --- Pagination ---

def page_count(total: int, page_size: int) -> int:
    return math.ceil(total / page_size) if page_size > 0 else 0

def paginate(movies: Sequence[MovieRecord], page: int, page_size: int) -> List[MovieRecord]:
    """1-indexed slice. Out-of-range pages are empty, never clamped."""
    if page < 1 or page_size < 1:
        return []
    start = (page - 1) * page_size
    return list(movies[start:start + page_size])

# --- Entry points ---

def compute_view(collection: Iterable[MovieRecord], params: ViewParams) -> Tuple[List[MovieRecord], int]:
    ordered = sort_movies(filter_movies(collection, params), params.sort_by)
    return paginate(ordered, params.page, params.page_size), page_count(len(ordered), params.page_size)

def build_view(collection: Iterable[MovieRecord], params: ViewParams) -> CatalogView:
    ordered = sort_movies(filter_movies(collection, params), params.sort_by)
    return CatalogView(
        movies=paginate(ordered, params.page, params.page_size),
        page=params.page,
        page_count=page_count(len(ordered), params.page_size),
        total=len(ordered),
    )

def available_tags(collection: Iterable[MovieRecord]) -> List[str]:
    """Unique tags across the collection, in first-seen order."""
    return list(dict.fromkeys(tag for m in collection for tag in m.tags))

def recent_movies(collection: Iterable[MovieRecord], count: int = RECENT_MOVIES_COUNT) -> List[MovieRecord]:
    return sorted(collection, key=lambda m: m.id, reverse=True)[:count]
