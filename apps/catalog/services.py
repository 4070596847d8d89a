import asyncio
import logging
import random
from typing import Optional, Dict, Any, List
import httpx
from pydantic.alias_generators import to_camel
from apps.core.models import Collection, MovieRecord, CommentRecord
from apps.core.omdb import OMDbService
from apps.core.ratings import round_rating
from apps.catalog.access import load_collection, mutate_collection, RequestCoordinator
from apps.catalog.client import StoreClient, StoreError
from apps.catalog.context import AppContext, now_ms
from apps.catalog.models import ViewParams, CatalogView, RuntimeRepairReport
from apps.catalog import pipeline
from config import settings

logger = logging.getLogger(__name__)

COMMENTS_KEY = "comments"

class InvalidRating(ValueError):
    pass

def parse_movies(items: List[Dict[str, Any]]) -> List[MovieRecord]:
    return [MovieRecord.model_validate(item) for item in items]

def parse_comments(items: List[Dict[str, Any]]) -> List[CommentRecord]:
    return [CommentRecord.model_validate(item) for item in items]


class CatalogService:
    def __init__(self, context: AppContext, client: StoreClient, coordinator: Optional[RequestCoordinator] = None):
        self.context = context
        self.client = client
        self.coordinator = coordinator or RequestCoordinator()
        self.loaded = False
        self._last_filters: Dict[Collection, tuple] = {}

    @property
    def local_store(self):
        return self.context.local_store

    # --- Loading ---

    async def load(self, collection: Collection) -> bool:
        key = collection.mirror_key
        return await self.coordinator.run(
            key,
            lambda: load_collection(lambda: self.client.list_movies(collection), self.local_store, key, parse=parse_movies),
            lambda movies: self.context.set_collection(collection, movies),
        )

    async def load_comments(self) -> bool:
        def apply(comments):
            self.context.comments = comments

        return await self.coordinator.run(
            COMMENTS_KEY,
            lambda: load_collection(self.client.list_comments, self.local_store, COMMENTS_KEY, parse=parse_comments),
            apply,
        )

    async def load_ratings(self) -> bool:
        """Merge community averages and this viewer's own ratings into both lists."""
        try:
            averages = await self.client.get_rating_averages()
        except StoreError as e:
            logger.error("Error fetching ratings from store: %s", e)
            return False

        try:
            user_ratings = await self.client.get_user_ratings(self.context.user_identifier)
        except StoreError as e:
            logger.warning("Could not fetch user ratings: %s", e)
            user_ratings = {}

        def merge(movie: MovieRecord) -> MovieRecord:
            summary = averages.get(str(movie.id))
            return movie.model_copy(update={
                "community_rating": summary.average if summary else None,
                "rating_count": summary.count if summary else None,
                "user_rating": user_ratings.get(str(movie.id)) or movie.user_rating,
            })

        for collection in Collection:
            self.context.set_collection(collection, [merge(m) for m in self.context.collection(collection)])
        return True

    async def load_all(self) -> None:
        # Disjoint pieces of state, safe to fetch side by side
        await asyncio.gather(
            self.load(Collection.MAIN),
            self.load(Collection.TO_WATCH),
            self.load_comments(),
        )
        await self.load_ratings()
        self.loaded = True

    # --- Views ---

    def view(self, collection: Collection, params: ViewParams) -> CatalogView:
        return pipeline.build_view(self.context.collection(collection), params)

    def browse(self, collection: Collection, params: ViewParams) -> CatalogView:
        """
        View as an interactive caller sees it: any filter change since the
        last browse of this list sends the page back to 1, and the sort
        choice is remembered as the viewer's preference.
        """
        filters = params.filter_key()
        previous = self._last_filters.get(collection)
        self._last_filters[collection] = filters
        if previous is not None and previous != filters and params.page != 1:
            params = params.model_copy(update={"page": 1})

        if params.sort_by != self.context.sort_preference:
            self.context.set_sort_preference(params.sort_by)
        return self.view(collection, params)

    def recent(self) -> List[MovieRecord]:
        return pipeline.recent_movies(self.context.movies)

    def tags(self, collection: Collection) -> List[str]:
        return pipeline.available_tags(self.context.collection(collection))

    def pick_random(self, collection: Collection) -> Optional[MovieRecord]:
        movies = self.context.collection(collection)
        return random.choice(movies) if movies else None

    def next_id(self, collection: Collection) -> int:
        return max((m.id for m in self.context.collection(collection)), default=0) + 1

    # --- Movie mutations ---

    async def _write(self, collection: Collection, new_state: List[MovieRecord], remote) -> bool:
        return await mutate_collection(
            remote,
            self.local_store,
            collection.mirror_key,
            new_state,
            apply=lambda movies: self.context.set_collection(collection, movies),
        )

    def _with_record(self, collection: Collection, record: MovieRecord) -> List[MovieRecord]:
        return [record if m.id == record.id else m for m in self.context.collection(collection)]

    async def _update_fields(self, collection: Collection, movie_id: int, updates: Dict[str, Any], remote=None) -> Optional[MovieRecord]:
        movie = self.context.find(collection, movie_id)
        if not movie:
            logger.warning("Movie %s not found in %s, nothing to update", movie_id, collection.value)
            return None

        updated = movie.model_copy(update=updates)
        new_state = self._with_record(collection, updated)
        if remote is None:
            wire = {to_camel(k): v for k, v in updates.items()}
            remote = lambda: self.client.patch_movie(collection, movie_id, wire)
        await self._write(collection, new_state, remote)
        return updated

    async def add_movie(self, collection: Collection, movie: MovieRecord) -> MovieRecord:
        if self.context.find(collection, movie.id):
            raise ValueError(f"Movie {movie.id} already exists in {collection.value}")
        if movie.date_added is None:
            movie = movie.model_copy(update={"date_added": now_ms()})

        new_state = [movie] + self.context.collection(collection)
        await self._write(collection, new_state, lambda: self.client.create_movie(collection, movie.to_wire()))
        return movie

    async def delete_movie(self, collection: Collection, movie_id: int) -> bool:
        if not self.context.find(collection, movie_id):
            logger.warning("Movie %s not found in %s, nothing to delete", movie_id, collection.value)
            return False

        new_state = [m for m in self.context.collection(collection) if m.id != movie_id]
        await self._write(collection, new_state, lambda: self.client.delete_movie(collection, movie_id))
        return True

    async def update_poster(self, movie_id: int, image: str) -> Optional[MovieRecord]:
        return await self._update_fields(
            Collection.MAIN, movie_id, {"image": image},
            remote=lambda: self.client.update_poster(movie_id, image),
        )

    async def update_runtime(self, collection: Collection, movie_id: int, runtime: str) -> Optional[MovieRecord]:
        return await self._update_fields(collection, movie_id, {"runtime": runtime})

    async def update_tags(self, collection: Collection, movie_id: int, tags: List[str]) -> Optional[MovieRecord]:
        # Tags behave as a set; keep first occurrence order for display
        cleaned = list(dict.fromkeys(t.strip() for t in tags if t and t.strip()))
        return await self._update_fields(collection, movie_id, {"tags": cleaned})

    async def add_tag(self, collection: Collection, movie_id: int, tag: str) -> Optional[MovieRecord]:
        tag = tag.strip()
        if not tag:
            raise ValueError("Tag cannot be empty")
        movie = self.context.find(collection, movie_id)
        if not movie:
            logger.warning("Movie %s not found in %s, cannot tag", movie_id, collection.value)
            return None
        if tag in movie.tags:
            return movie
        return await self.update_tags(collection, movie_id, movie.tags + [tag])

    async def remove_tag(self, collection: Collection, movie_id: int, tag: str) -> Optional[MovieRecord]:
        movie = self.context.find(collection, movie_id)
        if not movie:
            logger.warning("Movie %s not found in %s, cannot untag", movie_id, collection.value)
            return None
        return await self.update_tags(collection, movie_id, [t for t in movie.tags if t != tag])

    # --- Ratings ---

    async def rate_movie(self, collection: Collection, movie_id: int, value: int) -> Optional[MovieRecord]:
        """
        Records this viewer's 1-5 rating. The community aggregate is updated
        locally right away and replaced by the store's figures when the
        store answers.
        """
        if isinstance(value, bool) or not isinstance(value, int) or not 1 <= value <= 5:
            raise InvalidRating("Rating must be between 1 and 5")

        movie = self.context.find(collection, movie_id)
        if not movie:
            logger.warning("Movie %s not found in %s, rating ignored", movie_id, collection.value)
            return None

        count = movie.rating_count or 0
        total = (movie.community_rating or 0.0) * count
        if movie.user_rating is None or count == 0:
            count += 1
        else:
            total -= movie.user_rating

        updated = movie.model_copy(update={
            "user_rating": value,
            "community_rating": round_rating((total + value) / count),
            "rating_count": count,
        })
        accepted = await self._write(
            collection, self._with_record(collection, updated),
            lambda: self.client.submit_rating(movie_id, value, self.context.user_identifier),
        )
        if not accepted:
            # Optimistic figures stand
            return updated

        try:
            summary = await self.client.get_movie_ratings(movie_id)
        except StoreError as e:
            logger.warning("Could not refresh community rating for movie %s: %s", movie_id, e)
            return updated

        current = self.context.find(collection, movie_id) or updated
        refreshed = current.model_copy(update={"community_rating": summary.average, "rating_count": summary.count})
        new_state = self._with_record(collection, refreshed)
        self.context.set_collection(collection, new_state)
        self.local_store.set_json(collection.mirror_key, [m.to_wire() for m in new_state])
        return refreshed

    # --- Lists ---

    async def mark_as_watched(self, movie_id: int) -> Optional[MovieRecord]:
        """
        Moves a movie from the to-watch list to the head of the main list
        under a fresh id. Both lists change together before any store call.
        """
        movie = self.context.find(Collection.TO_WATCH, movie_id)
        if not movie:
            logger.warning("Movie %s not on the to-watch list", movie_id)
            return None

        watched = movie.model_copy(update={"id": self.next_id(Collection.MAIN), "date_added": now_ms()})
        new_main = [watched] + self.context.movies
        new_to_watch = [m for m in self.context.to_watch if m.id != movie_id]

        def apply(movies):
            self.context.movies = list(movies)
            self.context.to_watch = new_to_watch
            self.local_store.set_json(Collection.TO_WATCH.mirror_key, [m.to_wire() for m in new_to_watch])

        async def remote():
            await self.client.create_movie(Collection.MAIN, watched.to_wire())
            await self.client.delete_movie(Collection.TO_WATCH, movie_id)

        await mutate_collection(remote, self.local_store, Collection.MAIN.mirror_key, new_main, apply=apply)
        return watched

    # --- Comments ---

    def comments_for(self, movie_id: int) -> List[CommentRecord]:
        return sorted((c for c in self.context.comments if c.movie_id == movie_id), key=lambda c: c.timestamp)

    async def add_comment(self, movie_id: int, username: str, text: str) -> CommentRecord:
        if not text or not text.strip():
            raise ValueError("Comment text cannot be empty")

        timestamp = now_ms()
        comment = CommentRecord(
            id=str(timestamp),
            movie_id=movie_id,
            username=username or self.context.user_identifier,
            text=text.strip(),
            timestamp=timestamp,
        )

        def apply(comments):
            self.context.comments = list(comments)

        await mutate_collection(
            lambda: self.client.add_comment(comment.to_wire()),
            self.local_store, COMMENTS_KEY,
            self.context.comments + [comment],
            apply=apply,
        )
        return comment

    async def delete_comment(self, movie_id: int, comment_id: str) -> bool:
        if not any(c.id == comment_id and c.movie_id == movie_id for c in self.context.comments):
            logger.warning("Comment %s on movie %s not found", comment_id, movie_id)
            return False

        def apply(comments):
            self.context.comments = list(comments)

        await mutate_collection(
            lambda: self.client.delete_comment(movie_id, comment_id),
            self.local_store, COMMENTS_KEY,
            [c for c in self.context.comments if not (c.id == comment_id and c.movie_id == movie_id)],
            apply=apply,
        )
        return True

    # --- Maintenance ---

    async def backfill_date_added(self, collection: Collection) -> int:
        """
        One-time migration for legacy records without dateAdded: stamps the
        current time and writes each record back. Returns how many records
        the store accepted.
        """
        stamp = now_ms()
        written = 0
        new_state = []

        for movie in self.context.collection(collection):
            if movie.date_added:
                new_state.append(movie)
                continue

            logger.info("Adding dateAdded to movie #%s: %s", movie.id, movie.title)
            stamped = movie.model_copy(update={"date_added": stamp})
            new_state.append(stamped)
            try:
                await self.client.replace_movie(collection, movie.id, stamped.to_wire())
                written += 1
            except StoreError as e:
                logger.error("Error updating movie %s: %s", movie.id, e)

        self.context.set_collection(collection, new_state)
        self.local_store.set_json(collection.mirror_key, [m.to_wire() for m in new_state])
        logger.info("Migration complete, updated %d movies", written)
        return written

    async def fix_runtimes(self, collection: Collection, lookup: OMDbService) -> RuntimeRepairReport:
        """
        Operator repair: fills in missing runtimes ("142 min" / "3 Seasons")
        from OMDb, resolving the IMDb id by title and year when needed.
        """
        report = RuntimeRepairReport()
        missing = [m for m in self.context.collection(collection) if not (m.runtime or "").strip()]
        logger.info("Starting runtime fix for %d of %d movies in %s", len(missing), len(self.context.collection(collection)), collection.value)

        for movie in missing:
            try:
                imdb_id = movie.imdb_id or await lookup.search_title(movie.title, movie.year)
                if not imdb_id:
                    logger.info("%s not found on IMDb", movie.title)
                    report.skipped += 1
                    continue

                runtime = await lookup.get_runtime(imdb_id)
                if not runtime:
                    logger.info("No runtime information available for %s", movie.title)
                    report.skipped += 1
                    continue

                await self.client.patch_movie(collection, movie.id, {"runtime": runtime, "imdbId": imdb_id})
                report.updated += 1
            except (httpx.HTTPError, StoreError, ValueError) as e:
                logger.error("Error fixing runtime for %s: %s", movie.title, e)
                report.errors += 1

            await asyncio.sleep(settings.OMDB_REQUEST_DELAY)

        logger.info("Runtime fix done: %d updated, %d errors, %d skipped", report.updated, report.errors, report.skipped)
        await self.load(collection)
        return report
