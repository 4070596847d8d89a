from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel
from apps.core.models import Collection, MovieRecord, WireModel
from apps.core.omdb import OMDbService
from apps.catalog.deps import get_catalog_service, get_lookup
from apps.catalog.models import ViewParams, RuntimeFilter, SortOption, MOVIES_PER_PAGE_DESKTOP
from apps.catalog.services import CatalogService

router = APIRouter(prefix="/catalog", tags=["catalog"])

class RatingIn(BaseModel):
    rating: int

class TagIn(BaseModel):
    tag: str

class TagsIn(BaseModel):
    tags: List[str]

class RuntimeIn(BaseModel):
    runtime: str

class PosterIn(BaseModel):
    image: str

class CommentIn(BaseModel):
    text: str
    username: Optional[str] = None

class PreferencesIn(WireModel):
    dark_mode: Optional[bool] = None
    sort_by: Optional[SortOption] = None
    username: Optional[str] = None

def not_found(movie_id: int) -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Movie {movie_id} not found")

def preferences_payload(service: CatalogService):
    context = service.context
    return {
        "darkMode": context.dark_mode,
        "sortBy": context.sort_preference.value,
        "user": context.current_user,
        "userIdentifier": context.user_identifier,
    }

# --- Fixed paths (declared before the /{collection} routes) ---

@router.post("/refresh")
async def refresh(service: CatalogService = Depends(get_catalog_service)):
    await service.load_all()
    return {"movies": len(service.context.movies), "toWatch": len(service.context.to_watch)}

@router.get("/recent")
def recent(service: CatalogService = Depends(get_catalog_service)):
    return {"movies": [m.to_wire() for m in service.recent()]}

@router.get("/preferences")
def get_preferences(service: CatalogService = Depends(get_catalog_service)):
    return preferences_payload(service)

@router.put("/preferences")
def update_preferences(payload: PreferencesIn, service: CatalogService = Depends(get_catalog_service)):
    context = service.context
    if payload.dark_mode is not None:
        context.set_dark_mode(payload.dark_mode)
    if payload.sort_by is not None:
        context.set_sort_preference(payload.sort_by)
    if payload.username is not None:
        if payload.username.strip():
            context.sign_in({"username": payload.username.strip()})
        else:
            context.sign_out()
    return preferences_payload(service)

@router.get("/movies/{movie_id}")
def movie_detail(movie_id: int, service: CatalogService = Depends(get_catalog_service)):
    collection = service.context.locate(movie_id)
    if collection is None:
        raise not_found(movie_id)
    movie = service.context.find(collection, movie_id)
    return {
        "movie": movie.to_wire(),
        "collection": collection.value,
        "comments": [c.to_wire() for c in service.comments_for(movie_id)],
    }

@router.patch("/movies/{movie_id}/poster")
async def update_poster(movie_id: int, payload: PosterIn, service: CatalogService = Depends(get_catalog_service)):
    movie = await service.update_poster(movie_id, payload.image)
    if not movie:
        raise not_found(movie_id)
    return {"movie": movie.to_wire()}

@router.post("/towatch/movies/{movie_id}/watched")
async def mark_as_watched(movie_id: int, service: CatalogService = Depends(get_catalog_service)):
    movie = await service.mark_as_watched(movie_id)
    if not movie:
        raise not_found(movie_id)
    return {"movie": movie.to_wire()}

@router.get("/comments/{movie_id}")
def list_comments(movie_id: int, service: CatalogService = Depends(get_catalog_service)):
    return {"comments": [c.to_wire() for c in service.comments_for(movie_id)]}

@router.post("/comments/{movie_id}", status_code=status.HTTP_201_CREATED)
async def add_comment(movie_id: int, payload: CommentIn, service: CatalogService = Depends(get_catalog_service)):
    try:
        comment = await service.add_comment(movie_id, payload.username, payload.text)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return {"comment": comment.to_wire()}

@router.delete("/comments/{movie_id}/{comment_id}")
async def delete_comment(movie_id: int, comment_id: str, service: CatalogService = Depends(get_catalog_service)):
    if not await service.delete_comment(movie_id, comment_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Comment {comment_id} not found")
    return {"deleted": comment_id}

# --- Per collection ---

@router.get("/{collection}")
def browse(
    collection: Collection,
    genre: List[str] = Query([]),
    year: List[int] = Query([]),
    q: str = "",
    min_rating: float = 0.0,
    max_rating: float = 10.0,
    runtime: RuntimeFilter = RuntimeFilter.ALL,
    tag: List[str] = Query([]),
    sort: Optional[SortOption] = None,
    page: int = 1,
    page_size: int = MOVIES_PER_PAGE_DESKTOP,
    service: CatalogService = Depends(get_catalog_service)
):
    params = ViewParams(
        selected_genres=set(genre),
        selected_years=set(year),
        search_query=q,
        imdb_rating_range=(min_rating, max_rating),
        runtime_filter=runtime,
        selected_tags=set(tag),
        sort_by=sort or service.context.sort_preference,
        page=page,
        page_size=page_size,
    )
    view = service.browse(collection, params)
    return {
        **view.to_wire(),
        "sortBy": params.sort_by.value,
        "tags": service.tags(collection),
    }

@router.get("/{collection}/random")
def random_movie(collection: Collection, service: CatalogService = Depends(get_catalog_service)):
    movie = service.pick_random(collection)
    if not movie:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="List is empty")
    return {"movie": movie.to_wire()}

@router.post("/{collection}/movies", status_code=status.HTTP_201_CREATED)
async def add_movie(collection: Collection, payload: dict, service: CatalogService = Depends(get_catalog_service)):
    payload.setdefault("id", service.next_id(collection))
    try:
        movie = await service.add_movie(collection, MovieRecord.model_validate(payload))
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return {"movie": movie.to_wire()}

@router.delete("/{collection}/movies/{movie_id}")
async def delete_movie(collection: Collection, movie_id: int, service: CatalogService = Depends(get_catalog_service)):
    if not await service.delete_movie(collection, movie_id):
        raise not_found(movie_id)
    return {"deleted": movie_id}

@router.post("/{collection}/movies/{movie_id}/rating")
async def rate_movie(collection: Collection, movie_id: int, payload: RatingIn, service: CatalogService = Depends(get_catalog_service)):
    try:
        movie = await service.rate_movie(collection, movie_id, payload.rating)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    if not movie:
        raise not_found(movie_id)
    return {"movie": movie.to_wire()}

@router.put("/{collection}/movies/{movie_id}/tags")
async def replace_tags(collection: Collection, movie_id: int, payload: TagsIn, service: CatalogService = Depends(get_catalog_service)):
    movie = await service.update_tags(collection, movie_id, payload.tags)
    if not movie:
        raise not_found(movie_id)
    return {"movie": movie.to_wire()}

@router.post("/{collection}/movies/{movie_id}/tags")
async def add_tag(collection: Collection, movie_id: int, payload: TagIn, service: CatalogService = Depends(get_catalog_service)):
    try:
        movie = await service.add_tag(collection, movie_id, payload.tag)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    if not movie:
        raise not_found(movie_id)
    return {"movie": movie.to_wire()}

@router.delete("/{collection}/movies/{movie_id}/tags/{tag}")
async def remove_tag(collection: Collection, movie_id: int, tag: str, service: CatalogService = Depends(get_catalog_service)):
    movie = await service.remove_tag(collection, movie_id, tag)
    if not movie:
        raise not_found(movie_id)
    return {"movie": movie.to_wire()}

@router.patch("/{collection}/movies/{movie_id}/runtime")
async def update_runtime(collection: Collection, movie_id: int, payload: RuntimeIn, service: CatalogService = Depends(get_catalog_service)):
    movie = await service.update_runtime(collection, movie_id, payload.runtime)
    if not movie:
        raise not_found(movie_id)
    return {"movie": movie.to_wire()}

@router.post("/{collection}/backfill-date-added")
async def backfill_date_added(collection: Collection, service: CatalogService = Depends(get_catalog_service)):
    updated = await service.backfill_date_added(collection)
    return {"updated": updated}

@router.post("/{collection}/fix-runtimes")
async def fix_runtimes(
    collection: Collection,
    service: CatalogService = Depends(get_catalog_service),
    lookup: OMDbService = Depends(get_lookup)
):
    report = await service.fix_runtimes(collection, lookup)
    return report.model_dump()
