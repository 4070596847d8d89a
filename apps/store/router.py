import logging
from typing import Any, Dict
from fastapi import APIRouter, Body, Depends
from fastapi.responses import JSONResponse
from sqlmodel import Session
from database import get_session
from apps.core.models import Collection
from apps.core.omdb import OMDbService
from apps.store.services import StoreService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/store", tags=["store"])

def get_service(session: Session = Depends(get_session)) -> StoreService:
    return StoreService(session)

async def get_omdb():
    omdb = OMDbService()
    try:
        yield omdb
    finally:
        await omdb.close()

def ok(**payload) -> Dict[str, Any]:
    return {"success": True, **payload}

def fail(error: str, status_code: int = 500) -> JSONResponse:
    return JSONResponse({"success": False, "error": error}, status_code=status_code)

@router.get("/health")
def health():
    return {"status": "ok"}

# --- Movies / To watch ---

def collection_router(collection: Collection) -> APIRouter:
    """Same CRUD surface for the main list and the to-watch list."""
    sub = APIRouter(prefix=f"/{collection.endpoint}")
    label = collection.value

    @sub.get("")
    def list_movies(service: StoreService = Depends(get_service)):
        try:
            return ok(movies=service.list_movies(collection))
        except Exception as e:
            logger.exception("Error fetching %s movies", label)
            return fail(str(e))

    @sub.post("")
    def add_movie(movie: Dict[str, Any] = Body(...), service: StoreService = Depends(get_service)):
        if "id" not in movie:
            return fail("Movie id is required", 400)
        try:
            return ok(movie=service.save_movie(collection, movie))
        except Exception as e:
            logger.exception("Error adding %s movie", label)
            return fail(str(e))

    @sub.put("/{movie_id}")
    def replace_movie(movie_id: int, movie: Dict[str, Any] = Body(...), service: StoreService = Depends(get_service)):
        try:
            replaced = service.replace_movie(collection, movie_id, movie)
        except Exception as e:
            logger.exception("Error replacing %s movie %s", label, movie_id)
            return fail(str(e))
        if replaced is None:
            return fail("Movie not found", 404)
        return ok(movie=replaced)

    @sub.patch("/{movie_id}")
    def update_movie(movie_id: int, updates: Dict[str, Any] = Body(...), service: StoreService = Depends(get_service)):
        try:
            updated = service.update_movie(collection, movie_id, updates)
        except Exception as e:
            logger.exception("Error updating %s movie %s", label, movie_id)
            return fail(str(e))
        if updated is None:
            return fail("Movie not found", 404)
        return ok(movie=updated)

    @sub.delete("/{movie_id}")
    def delete_movie(movie_id: int, service: StoreService = Depends(get_service)):
        try:
            service.delete_movie(collection, movie_id)
            return ok()
        except Exception as e:
            logger.exception("Error deleting %s movie %s", label, movie_id)
            return fail(str(e))

    return sub

@router.post("/movies/fix-plots")
async def fix_plots(
    limit: int = 10,
    service: StoreService = Depends(get_service),
    omdb: OMDbService = Depends(get_omdb)
):
    try:
        return ok(**await service.fix_plots(omdb, limit=limit))
    except Exception as e:
        logger.exception("Error fixing movie plots")
        return fail(str(e))

@router.patch("/movies/{movie_id}/poster")
def update_poster(movie_id: int, payload: Dict[str, Any] = Body(...), service: StoreService = Depends(get_service)):
    try:
        updated = service.update_movie(Collection.MAIN, movie_id, {"image": payload.get("image")})
    except Exception as e:
        logger.exception("Error updating poster for movie %s", movie_id)
        return fail(str(e))
    if updated is None:
        return fail("Movie not found", 404)
    return ok(movie=updated)

router.include_router(collection_router(Collection.MAIN))
router.include_router(collection_router(Collection.TO_WATCH))

# --- Comments ---

@router.get("/comments")
def list_comments(service: StoreService = Depends(get_service)):
    try:
        return ok(comments=service.list_comments())
    except Exception as e:
        logger.exception("Error fetching all comments")
        return fail(str(e))

@router.get("/comments/{movie_id}")
def list_movie_comments(movie_id: int, service: StoreService = Depends(get_service)):
    try:
        return ok(comments=service.list_comments(movie_id))
    except Exception as e:
        logger.exception("Error fetching comments for movie %s", movie_id)
        return fail(str(e))

@router.post("/comments")
def add_comment(comment: Dict[str, Any] = Body(...), service: StoreService = Depends(get_service)):
    if "movieId" not in comment or "id" not in comment:
        return fail("Missing required fields", 400)
    try:
        return ok(comment=service.add_comment(comment))
    except Exception as e:
        logger.exception("Error adding comment")
        return fail(str(e))

@router.delete("/comments/{movie_id}/{comment_id}")
def delete_comment(movie_id: int, comment_id: str, service: StoreService = Depends(get_service)):
    try:
        service.delete_comment(movie_id, comment_id)
        return ok()
    except Exception as e:
        logger.exception("Error deleting comment %s", comment_id)
        return fail(str(e))

# --- Ratings ---

@router.post("/ratings")
def submit_rating(payload: Dict[str, Any] = Body(...), service: StoreService = Depends(get_service)):
    movie_id = payload.get("movieId")
    rating = payload.get("rating")
    user_identifier = payload.get("userIdentifier")

    if not movie_id or not rating or not user_identifier:
        return fail("Missing required fields", 400)
    if not isinstance(rating, int) or isinstance(rating, bool) or rating < 1 or rating > 5:
        return fail("Rating must be between 1 and 5", 400)

    try:
        return ok(rating=service.submit_rating(int(movie_id), rating, str(user_identifier)))
    except Exception as e:
        logger.exception("Error submitting rating")
        return fail(str(e))

@router.get("/ratings")
def rating_averages(service: StoreService = Depends(get_service)):
    try:
        return ok(averages=service.get_rating_averages())
    except Exception as e:
        logger.exception("Error fetching all ratings")
        return fail(str(e))

@router.get("/ratings/{movie_id}")
def movie_ratings(movie_id: int, service: StoreService = Depends(get_service)):
    try:
        return ok(**service.get_movie_ratings(movie_id))
    except Exception as e:
        logger.exception("Error fetching ratings for movie %s", movie_id)
        return fail(str(e))

@router.get("/user-ratings/{user_identifier}")
def user_ratings(user_identifier: str, service: StoreService = Depends(get_service)):
    try:
        return ok(userRatings=service.get_user_ratings(user_identifier))
    except Exception as e:
        logger.exception("Error fetching ratings for user %s", user_identifier)
        return fail(str(e))
