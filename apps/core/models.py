from typing import Optional, List, Dict, Any
from enum import Enum
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

class Collection(str, Enum):
    MAIN = "main"
    TO_WATCH = "towatch"

    @property
    def key_prefix(self) -> str:
        # Store keys: movie:<id> / towatch:<id>
        return "movie" if self is Collection.MAIN else "towatch"

    @property
    def endpoint(self) -> str:
        return "movies" if self is Collection.MAIN else "towatch"

    @property
    def mirror_key(self) -> str:
        # Local mirror keys kept from the browser client
        return "movies" if self is Collection.MAIN else "toWatchMovies"


class WireModel(BaseModel):
    """Base for records exchanged as camelCase JSON."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class MovieRecord(WireModel):
    # The store is schemaless; unknown fields must survive a round trip
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    id: int
    title: str
    year: int = 0
    genre: str = ""
    description: str = ""
    plot: Optional[str] = None
    image: str = ""
    runtime: Optional[str] = None
    imdb_id: Optional[str] = None

    rating: Optional[float] = None # 0-10, external
    imdb_rating: Optional[float] = None # 0-10, external
    user_rating: Optional[int] = None # 1-5, this viewer
    community_rating: Optional[float] = None # mean of all viewers
    rating_count: Optional[int] = None

    tags: List[str] = Field(default_factory=list)
    date_added: Optional[int] = None # epoch ms, absent on legacy records

    @property
    def external_rating(self) -> float:
        return self.imdb_rating or self.rating or 0.0


class CommentRecord(WireModel):
    id: str
    movie_id: int
    username: str
    text: str
    timestamp: int


class RatingRecord(WireModel):
    movie_id: int
    rating: int = Field(ge=1, le=5)
    user_identifier: str
    timestamp: int


class RatingSummary(WireModel):
    average: float
    count: int
