import asyncio
import json
import logging
from collections import defaultdict
from datetime import datetime
from typing import Optional, Dict, Any, List
from sqlmodel import Session, select
from starlette.concurrency import run_in_threadpool
from apps.store.models import KVEntry
from apps.core.models import Collection
from apps.core.ratings import average_rating
from apps.core.omdb import OMDbService
from config import settings

logger = logging.getLogger(__name__)

class KVStore:
    """Schemaless key-value access on top of the KVEntry table."""

    def __init__(self, session: Session):
        self.session = session

    def get(self, key: str) -> Optional[Any]:
        # Always read through to the table, never a stale identity-map copy
        entry = self.session.get(KVEntry, key, populate_existing=True)
        return json.loads(entry.value) if entry else None

    def set(self, key: str, value: Any) -> None:
        entry = self.session.get(KVEntry, key, populate_existing=True)
        if not entry:
            entry = KVEntry(key=key, value=json.dumps(value))
        else:
            entry.value = json.dumps(value)
            entry.updated_at = datetime.utcnow()
        self.session.add(entry)
        self.session.commit()

    def delete(self, key: str) -> None:
        entry = self.session.get(KVEntry, key, populate_existing=True)
        if entry:
            self.session.delete(entry)
            self.session.commit()

    def get_by_prefix(self, prefix: str) -> List[Any]:
        entries = self.session.exec(
            select(KVEntry)
            .where(KVEntry.key.startswith(prefix, autoescape=True))
            .order_by(KVEntry.key)
            .execution_options(populate_existing=True)
        ).all()
        return [json.loads(e.value) for e in entries]


class StoreService:
    def __init__(self, session: Session):
        self.kv = KVStore(session)

    # --- Movies / To watch ---

    def list_movies(self, collection: Collection) -> List[Dict[str, Any]]:
        return self.kv.get_by_prefix(f"{collection.key_prefix}:")

    def get_movie(self, collection: Collection, movie_id: int) -> Optional[Dict[str, Any]]:
        return self.kv.get(f"{collection.key_prefix}:{movie_id}")

    def save_movie(self, collection: Collection, movie: Dict[str, Any]) -> Dict[str, Any]:
        self.kv.set(f"{collection.key_prefix}:{movie['id']}", movie)
        return movie

    def update_movie(self, collection: Collection, movie_id: int, updates: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Shallow-merge fields into an existing movie. None when it does not exist."""
        movie = self.get_movie(collection, movie_id)
        if movie is None:
            return None
        updated = {**movie, **updates}
        self.kv.set(f"{collection.key_prefix}:{movie_id}", updated)
        return updated

    def replace_movie(self, collection: Collection, movie_id: int, movie: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        if self.get_movie(collection, movie_id) is None:
            return None
        movie = {**movie, "id": movie_id}
        self.kv.set(f"{collection.key_prefix}:{movie_id}", movie)
        return movie

    def delete_movie(self, collection: Collection, movie_id: int) -> None:
        self.kv.delete(f"{collection.key_prefix}:{movie_id}")

    # --- Comments ---

    def list_comments(self, movie_id: Optional[int] = None) -> List[Dict[str, Any]]:
        prefix = "comment:" if movie_id is None else f"comment:{movie_id}:"
        return self.kv.get_by_prefix(prefix)

    def add_comment(self, comment: Dict[str, Any]) -> Dict[str, Any]:
        self.kv.set(f"comment:{comment['movieId']}:{comment['id']}", comment)
        return comment

    def delete_comment(self, movie_id: int, comment_id: str) -> None:
        self.kv.delete(f"comment:{movie_id}:{comment_id}")

    # --- Ratings ---

    def submit_rating(self, movie_id: int, rating: int, user_identifier: str) -> Dict[str, Any]:
        """One rating per (movie, user); resubmitting replaces it."""
        data = {
            "movieId": movie_id,
            "rating": rating,
            "userIdentifier": user_identifier,
            "timestamp": int(datetime.utcnow().timestamp() * 1000),
        }
        self.kv.set(f"rating:{movie_id}:{user_identifier}", data)
        return data

    def get_movie_ratings(self, movie_id: int) -> Dict[str, Any]:
        ratings = self.kv.get_by_prefix(f"rating:{movie_id}:")
        return {
            "ratings": ratings,
            "average": average_rating(r["rating"] for r in ratings),
            "count": len(ratings),
        }

    def get_rating_averages(self) -> Dict[str, Dict[str, Any]]:
        by_movie = defaultdict(list)
        for r in self.kv.get_by_prefix("rating:"):
            by_movie[str(r["movieId"])].append(r["rating"])

        return {
            movie_id: {"average": average_rating(values), "count": len(values)}
            for movie_id, values in by_movie.items()
        }

    def get_user_ratings(self, user_identifier: str) -> Dict[str, int]:
        return {
            str(r["movieId"]): r["rating"]
            for r in self.kv.get_by_prefix("rating:")
            if r.get("userIdentifier") == user_identifier
        }

    # --- Maintenance ---

    @staticmethod
    def needs_plot(movie: Dict[str, Any]) -> bool:
        plot = movie.get("plot")
        return bool(movie.get("imdbId")) and (not plot or len(plot) < 100 or plot == "N/A")

    async def fix_plots(self, omdb: OMDbService, limit: int = 10) -> Dict[str, Any]:
        """
        Fills missing or short plots from OMDb, `limit` movies per call
        so a single request stays well under gateway timeouts.
        """
        movies = await run_in_threadpool(self.list_movies, Collection.MAIN)
        pending = [m for m in movies if self.needs_plot(m)]
        batch = pending[:limit]
        logger.info("Fixing plots: %d movies total, %d need a plot, processing %d", len(movies), len(pending), len(batch))

        updated = errors = skipped = 0
        for movie in batch:
            try:
                plot = await omdb.get_plot(movie["imdbId"])
                if plot:
                    await run_in_threadpool(self.save_movie, Collection.MAIN, {**movie, "plot": plot})
                    updated += 1
                else:
                    logger.info("No plot available for %s", movie.get("title"))
                    skipped += 1
            except Exception as e:
                logger.error("Error updating plot for %s: %s", movie.get("title"), e)
                errors += 1
            await asyncio.sleep(settings.OMDB_REQUEST_DELAY)

        remaining = len([m for m in await run_in_threadpool(self.list_movies, Collection.MAIN) if self.needs_plot(m)])
        logger.info("Plot fix complete: %d updated, %d errors, %d skipped", updated, errors, skipped)

        return {
            "message": f"Updated {updated} movies. {errors} errors. {skipped} skipped.",
            "updatedCount": updated,
            "errorCount": errors,
            "skippedCount": skipped,
            "totalMovies": len(movies),
            "moviesProcessed": len(batch),
            "moviesNeedingUpdate": remaining,
            "hasMore": remaining > len(batch),
        }
