import httpx
from typing import Optional, Dict, Any, List
from apps.core.models import Collection, RatingSummary
from config import settings

class StoreError(Exception):
    """Store API unreachable, answered non-2xx, or returned success: false."""


class StoreClient:
    def __init__(
        self,
        base_url: Optional[str] = None,
        anon_key: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = (base_url or settings.STORE_URL).rstrip("/")
        anon_key = anon_key if anon_key is not None else settings.STORE_ANON_KEY
        self.client = httpx.AsyncClient(
            base_url=self.base_url,
            headers={"Authorization": f"Bearer {anon_key}"},
            timeout=settings.HTTP_TIMEOUT,
            transport=transport,
        )

    async def close(self):
        await self.client.aclose()

    async def _request(self, method: str, path: str, **kwargs) -> Dict[str, Any]:
        """Send a request and unwrap the {success, ..., error?} envelope."""
        try:
            response = await self.client.request(method, path, **kwargs)
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise StoreError(f"{method} {path} failed: {e}") from e

        try:
            data = response.json()
        except ValueError as e:
            raise StoreError(f"{method} {path} returned a malformed body") from e

        if not isinstance(data, dict) or not data.get("success"):
            error = data.get("error") if isinstance(data, dict) else None
            raise StoreError(error or f"{method} {path} was not successful")
        return data

    # --- Movies / To watch ---

    async def list_movies(self, collection: Collection) -> List[Dict[str, Any]]:
        data = await self._request("GET", f"/{collection.endpoint}")
        movies = data.get("movies")
        if not isinstance(movies, list):
            raise StoreError(f"GET /{collection.endpoint} returned no movie list")
        return movies

    async def create_movie(self, collection: Collection, movie: Dict[str, Any]) -> Dict[str, Any]:
        data = await self._request("POST", f"/{collection.endpoint}", json=movie)
        return data.get("movie", movie)

    async def patch_movie(self, collection: Collection, movie_id: int, updates: Dict[str, Any]) -> Dict[str, Any]:
        data = await self._request("PATCH", f"/{collection.endpoint}/{movie_id}", json=updates)
        return data["movie"]

    async def replace_movie(self, collection: Collection, movie_id: int, movie: Dict[str, Any]) -> Dict[str, Any]:
        data = await self._request("PUT", f"/{collection.endpoint}/{movie_id}", json=movie)
        return data["movie"]

    async def delete_movie(self, collection: Collection, movie_id: int) -> None:
        await self._request("DELETE", f"/{collection.endpoint}/{movie_id}")

    async def update_poster(self, movie_id: int, image: str) -> Dict[str, Any]:
        data = await self._request("PATCH", f"/movies/{movie_id}/poster", json={"image": image})
        return data["movie"]

    # --- Comments ---

    async def list_comments(self) -> List[Dict[str, Any]]:
        data = await self._request("GET", "/comments")
        return data.get("comments", [])

    async def add_comment(self, comment: Dict[str, Any]) -> Dict[str, Any]:
        data = await self._request("POST", "/comments", json=comment)
        return data.get("comment", comment)

    async def delete_comment(self, movie_id: int, comment_id: str) -> None:
        await self._request("DELETE", f"/comments/{movie_id}/{comment_id}")

    # --- Ratings ---

    async def submit_rating(self, movie_id: int, rating: int, user_identifier: str) -> Dict[str, Any]:
        data = await self._request("POST", "/ratings", json={
            "movieId": movie_id,
            "rating": rating,
            "userIdentifier": user_identifier,
        })
        return data["rating"]

    async def get_movie_ratings(self, movie_id: int) -> RatingSummary:
        data = await self._request("GET", f"/ratings/{movie_id}")
        return RatingSummary(average=data.get("average", 0), count=data.get("count", 0))

    async def get_rating_averages(self) -> Dict[str, RatingSummary]:
        data = await self._request("GET", "/ratings")
        return {movie_id: RatingSummary(**summary) for movie_id, summary in data.get("averages", {}).items()}

    async def get_user_ratings(self, user_identifier: str) -> Dict[str, int]:
        data = await self._request("GET", f"/user-ratings/{user_identifier}")
        return data.get("userRatings", {})
