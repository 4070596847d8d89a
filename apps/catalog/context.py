import logging
import secrets
import string
import time
from dataclasses import dataclass, field
from typing import Optional, Dict, Any, List
from apps.core.models import Collection, MovieRecord, CommentRecord
from apps.catalog.local_store import LocalStore
from apps.catalog.models import SortOption

logger = logging.getLogger(__name__)

_ALPHABET = string.ascii_lowercase + string.digits

def now_ms() -> int:
    return int(time.time() * 1000)

def new_anonymous_id() -> str:
    suffix = "".join(secrets.choice(_ALPHABET) for _ in range(13))
    return f"anon_{now_ms()}_{suffix}"


@dataclass
class AppContext:
    """
    Client-side state: who is viewing, their preferences, and the in-memory
    copies of both collections and the comments. Preferences are persisted
    in the local store so they survive restarts.
    """
    local_store: LocalStore
    current_user: Optional[Dict[str, Any]] = None
    dark_mode: bool = False
    sort_preference: SortOption = SortOption.DATE_ADDED
    movies: List[MovieRecord] = field(default_factory=list)
    to_watch: List[MovieRecord] = field(default_factory=list)
    comments: List[CommentRecord] = field(default_factory=list)

    @classmethod
    def restore(cls, local_store: LocalStore) -> "AppContext":
        context = cls(local_store=local_store)
        context.dark_mode = bool(local_store.get_json("darkMode", False))

        saved_sort = local_store.get_item("sortPreference")
        try:
            context.sort_preference = SortOption(saved_sort) if saved_sort else SortOption.DATE_ADDED
        except ValueError:
            logger.warning("Ignoring unknown sort preference %r", saved_sort)

        user = local_store.get_json("currentUser")
        context.current_user = user if isinstance(user, dict) else None
        return context

    # --- Identity ---

    @property
    def anonymous_id(self) -> str:
        anonymous_id = self.local_store.get_item("anonymousUserId")
        if not anonymous_id:
            anonymous_id = new_anonymous_id()
            self.local_store.set_item("anonymousUserId", anonymous_id)
        return anonymous_id

    @property
    def user_identifier(self) -> str:
        """Signed-in username, otherwise the persisted anonymous id."""
        if self.current_user and self.current_user.get("username"):
            return self.current_user["username"]
        return self.anonymous_id

    def sign_in(self, user: Dict[str, Any]) -> None:
        self.current_user = user
        self.local_store.set_json("currentUser", user)

    def sign_out(self) -> None:
        self.current_user = None
        self.local_store.remove_item("currentUser")

    # --- Preferences ---

    def set_dark_mode(self, enabled: bool) -> None:
        self.dark_mode = enabled
        self.local_store.set_json("darkMode", enabled)

    def set_sort_preference(self, sort_by: SortOption) -> None:
        self.sort_preference = sort_by
        self.local_store.set_item("sortPreference", sort_by.value)

    # --- Collections ---

    def collection(self, collection: Collection) -> List[MovieRecord]:
        return self.movies if collection is Collection.MAIN else self.to_watch

    def set_collection(self, collection: Collection, movies: List[MovieRecord]) -> None:
        if collection is Collection.MAIN:
            self.movies = list(movies)
        else:
            self.to_watch = list(movies)

    def find(self, collection: Collection, movie_id: int) -> Optional[MovieRecord]:
        return next((m for m in self.collection(collection) if m.id == movie_id), None)

    def locate(self, movie_id: int) -> Optional[Collection]:
        """Which list a movie lives in; main wins if an id is in both."""
        for collection in (Collection.MAIN, Collection.TO_WATCH):
            if self.find(collection, movie_id):
                return collection
        return None
