import httpx
from typing import Optional, Dict, Any
from config import settings

class OMDbService:
    def __init__(self, api_key: Optional[str] = None, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.api_key = api_key if api_key is not None else settings.OMDB_API_KEY
        self.base_url = settings.OMDB_BASE_URL
        self.client = httpx.AsyncClient(
            base_url=self.base_url,
            params={"apikey": self.api_key},
            timeout=settings.HTTP_TIMEOUT,
            transport=transport,
        )

    async def close(self):
        await self.client.aclose()

    async def _get(self, params: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        response = await self.client.get("", params=params)
        response.raise_for_status()
        data = response.json()
        # OMDb answers 200 with Response="False" for unknown titles
        if not isinstance(data, dict) or data.get("Response") != "True":
            return None
        return data

    async def get_by_id(self, imdb_id: str, full_plot: bool = False) -> Optional[Dict[str, Any]]:
        """Get details for a title by IMDb id."""
        params = {"i": imdb_id}
        if full_plot:
            params["plot"] = "full"
        return await self._get(params)

    async def search_title(self, title: str, year: Optional[int] = None) -> Optional[str]:
        """Resolve a title (and optional year) to an IMDb id."""
        params = {"t": title}
        if year:
            params["y"] = year
        data = await self._get(params)
        return data.get("imdbID") if data else None

    async def get_runtime(self, imdb_id: str) -> Optional[str]:
        """
        Runtime as stored on a movie record: "142 min" for films,
        "3 Seasons" / "1 Season" for series. None when OMDb has nothing.
        """
        data = await self.get_by_id(imdb_id)
        if not data:
            return None

        if data.get("Type") == "series":
            seasons = data.get("totalSeasons")
            if not seasons or seasons == "N/A":
                return None
            return f"{seasons} Season{'' if seasons == '1' else 's'}"

        runtime = data.get("Runtime")
        if not runtime or runtime == "N/A":
            return None
        return runtime

    async def get_plot(self, imdb_id: str) -> Optional[str]:
        data = await self.get_by_id(imdb_id, full_plot=True)
        if not data:
            return None
        plot = data.get("Plot")
        if not plot or plot == "N/A":
            return None
        return plot
