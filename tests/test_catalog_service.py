import logging

import httpx
import pytest

from apps.core.models import Collection, MovieRecord
from apps.core.omdb import OMDbService
from apps.catalog.client import StoreClient
from apps.catalog.context import AppContext
from apps.catalog.models import ViewParams, SortOption
from apps.catalog.services import CatalogService, InvalidRating
from factories import make_movie


def ids(movies):
    return [m.id for m in movies]


# --- Loading ---

@pytest.mark.asyncio
async def test_load_all_merges_ratings_into_both_lists(catalog, context, store, seed):
    seed(Collection.MAIN, make_movie(1), make_movie(2))
    seed(Collection.TO_WATCH, make_movie(3))
    store.submit_rating(1, 4, "someone")
    store.submit_rating(1, 3, context.user_identifier)
    store.submit_rating(3, 5, "someone")

    await catalog.load_all()

    assert catalog.loaded
    first = context.find(Collection.MAIN, 1)
    assert first.community_rating == 3.5
    assert first.rating_count == 2
    assert first.user_rating == 3
    assert context.find(Collection.MAIN, 2).community_rating is None
    assert context.find(Collection.TO_WATCH, 3).community_rating == 5.0

@pytest.mark.asyncio
async def test_load_all_mirrors_collections(catalog, local_store, seed):
    seed(Collection.TO_WATCH, make_movie(3, title="Later"))

    await catalog.load_all()

    assert local_store.get_json("toWatchMovies")[0]["title"] == "Later"
    assert local_store.get_json("movies") == []
    assert local_store.get_json("comments") == []

@pytest.mark.asyncio
async def test_offline_load_uses_mirror(offline_catalog, context, local_store, caplog):
    local_store.set_json("movies", [make_movie(9, title="Cached").to_wire()])

    with caplog.at_level(logging.ERROR):
        await offline_catalog.load_all()

    assert [m.title for m in context.movies] == ["Cached"]
    assert context.to_watch == []
    assert "using local mirror" in caplog.text


# --- Ratings ---

@pytest.mark.asyncio
async def test_first_rating_counts_and_averages(catalog, context, store, seed):
    seed(Collection.MAIN, make_movie(1))
    store.submit_rating(1, 5, "someone")
    await catalog.load_all()

    rated = await catalog.rate_movie(Collection.MAIN, 1, 3)

    assert rated.user_rating == 3
    assert rated.rating_count == 2
    assert rated.community_rating == 4.0
    assert context.find(Collection.MAIN, 1) == rated
    assert store.get_movie_ratings(1)["count"] == 2

@pytest.mark.asyncio
async def test_rerating_replaces_own_vote(catalog, context, store, seed):
    seed(Collection.MAIN, make_movie(1))
    await catalog.load_all()

    await catalog.rate_movie(Collection.MAIN, 1, 2)
    rated = await catalog.rate_movie(Collection.MAIN, 1, 5)

    assert rated.rating_count == 1
    assert rated.community_rating == 5.0
    assert store.get_user_ratings(context.user_identifier) == {"1": 5}

@pytest.mark.asyncio
@pytest.mark.parametrize("value", [0, 6, True])
async def test_invalid_rating_changes_nothing(catalog, context, store, seed, value):
    seed(Collection.MAIN, make_movie(1))
    await catalog.load_all()
    before = context.find(Collection.MAIN, 1)

    with pytest.raises(InvalidRating):
        await catalog.rate_movie(Collection.MAIN, 1, value)

    assert context.find(Collection.MAIN, 1) == before
    assert store.get_movie_ratings(1)["count"] == 0

@pytest.mark.asyncio
async def test_offline_rating_is_kept_locally(offline_catalog, context):
    context.movies = [make_movie(1)]

    rated = await offline_catalog.rate_movie(Collection.MAIN, 1, 4)

    assert rated.user_rating == 4
    assert rated.community_rating == 4.0
    assert rated.rating_count == 1

@pytest.mark.asyncio
async def test_rating_unknown_movie_is_logged(catalog, caplog):
    with caplog.at_level(logging.WARNING):
        assert await catalog.rate_movie(Collection.MAIN, 404, 3) is None
    assert "not found" in caplog.text


# --- Movies ---

@pytest.mark.asyncio
async def test_add_movie_stamps_date_and_reaches_store(catalog, context, store):
    movie = await catalog.add_movie(Collection.MAIN, MovieRecord(id=1, title="Heat", year=1995))

    assert movie.date_added is not None
    assert ids(context.movies) == [1]
    assert store.get_movie(Collection.MAIN, 1)["dateAdded"] == movie.date_added

@pytest.mark.asyncio
async def test_add_duplicate_movie_is_rejected(catalog, context):
    context.movies = [make_movie(1)]
    with pytest.raises(ValueError):
        await catalog.add_movie(Collection.MAIN, make_movie(1))

@pytest.mark.asyncio
async def test_offline_add_survives_restart(offline_catalog, offline_client, local_store):
    await offline_catalog.add_movie(Collection.TO_WATCH, make_movie(5, title="Someday"))

    restarted = CatalogService(AppContext.restore(local_store), offline_client)
    await restarted.load_all()
    assert [m.title for m in restarted.context.to_watch] == ["Someday"]

@pytest.mark.asyncio
async def test_delete_movie(catalog, context, store, seed, caplog):
    seed(Collection.MAIN, make_movie(1), make_movie(2))
    await catalog.load_all()

    assert await catalog.delete_movie(Collection.MAIN, 1) is True
    assert ids(context.movies) == [2]
    assert store.get_movie(Collection.MAIN, 1) is None

    with caplog.at_level(logging.WARNING):
        assert await catalog.delete_movie(Collection.MAIN, 1) is False
    assert "nothing to delete" in caplog.text

@pytest.mark.asyncio
async def test_update_poster_and_runtime(catalog, context, store, seed):
    seed(Collection.MAIN, make_movie(1))
    seed(Collection.TO_WATCH, make_movie(2))
    await catalog.load_all()

    await catalog.update_poster(1, "https://img/1.jpg")
    await catalog.update_runtime(Collection.TO_WATCH, 2, "2 Seasons")

    assert context.find(Collection.MAIN, 1).image == "https://img/1.jpg"
    assert store.get_movie(Collection.MAIN, 1)["image"] == "https://img/1.jpg"
    assert store.get_movie(Collection.TO_WATCH, 2)["runtime"] == "2 Seasons"

@pytest.mark.asyncio
async def test_tags(catalog, context, store, seed):
    seed(Collection.MAIN, make_movie(1))
    await catalog.load_all()

    await catalog.add_tag(Collection.MAIN, 1, " noir ")
    await catalog.add_tag(Collection.MAIN, 1, "noir")
    await catalog.add_tag(Collection.MAIN, 1, "crime")
    assert context.find(Collection.MAIN, 1).tags == ["noir", "crime"]

    await catalog.remove_tag(Collection.MAIN, 1, "noir")
    assert store.get_movie(Collection.MAIN, 1)["tags"] == ["crime"]

    updated = await catalog.update_tags(Collection.MAIN, 1, ["a", " a", "", "b"])
    assert updated.tags == ["a", "b"]
    assert catalog.tags(Collection.MAIN) == ["a", "b"]

    with pytest.raises(ValueError):
        await catalog.add_tag(Collection.MAIN, 1, "   ")


# --- Lists ---

@pytest.mark.asyncio
async def test_mark_as_watched_moves_movie_under_new_id(catalog, context, store, local_store, seed):
    seed(Collection.MAIN, make_movie(1), make_movie(2))
    seed(Collection.TO_WATCH, make_movie(10, title="Finally"))
    await catalog.load_all()

    watched = await catalog.mark_as_watched(10)

    assert watched.id == 3
    assert watched.title == "Finally"
    assert watched.date_added is not None
    assert context.movies[0] == watched
    assert context.to_watch == []
    assert store.get_movie(Collection.MAIN, 3)["title"] == "Finally"
    assert store.get_movie(Collection.TO_WATCH, 10) is None
    assert local_store.get_json("toWatchMovies") == []

@pytest.mark.asyncio
async def test_mark_unknown_movie_as_watched(catalog):
    assert await catalog.mark_as_watched(77) is None


# --- Comments ---

@pytest.mark.asyncio
async def test_comments(catalog, store):
    comment = await catalog.add_comment(1, "ana", "  Great ending  ")

    assert comment.text == "Great ending"
    assert catalog.comments_for(1) == [comment]
    assert catalog.comments_for(2) == []
    assert store.list_comments(1)[0]["text"] == "Great ending"

    assert await catalog.delete_comment(1, comment.id) is True
    assert catalog.comments_for(1) == []
    assert store.list_comments(1) == []
    assert await catalog.delete_comment(1, comment.id) is False

@pytest.mark.asyncio
async def test_anonymous_comment_uses_viewer_id(catalog, context):
    comment = await catalog.add_comment(1, "", "hi")
    assert comment.username == context.user_identifier

@pytest.mark.asyncio
async def test_empty_comment_is_rejected(catalog, context):
    with pytest.raises(ValueError):
        await catalog.add_comment(1, "ana", "   ")
    assert context.comments == []


# --- Views ---

def test_browse_resets_page_when_filters_change(catalog, context):
    context.movies = [make_movie(i, genre="Drama" if i % 2 else "Comedy") for i in range(1, 41)]

    view = catalog.browse(Collection.MAIN, ViewParams(page=2, page_size=12))
    assert view.page == 2

    view = catalog.browse(Collection.MAIN, ViewParams(selected_genres={"Drama"}, page=2, page_size=12))
    assert view.page == 1
    assert view.total == 20

    view = catalog.browse(Collection.MAIN, ViewParams(selected_genres={"Drama"}, page=2, page_size=12))
    assert view.page == 2
    assert len(view.movies) == 8

def test_browse_remembers_sort_preference(catalog, context, local_store):
    context.movies = [make_movie(1, title="B"), make_movie(2, title="A")]

    view = catalog.browse(Collection.MAIN, ViewParams(sort_by=SortOption.TITLE))

    assert ids(view.movies) == [2, 1]
    assert context.sort_preference == SortOption.TITLE
    assert local_store.get_item("sortPreference") == "title"

def test_recent_and_random(catalog, context):
    context.movies = [make_movie(i) for i in range(1, 11)]
    assert ids(catalog.recent()) == [10, 9, 8, 7, 6, 5, 4, 3]
    assert catalog.pick_random(Collection.MAIN) in context.movies
    assert catalog.pick_random(Collection.TO_WATCH) is None
    assert catalog.next_id(Collection.MAIN) == 11
    assert catalog.next_id(Collection.TO_WATCH) == 1


# --- Maintenance ---

@pytest.mark.asyncio
async def test_backfill_date_added(catalog, context, store, seed):
    seed(Collection.MAIN, make_movie(1), make_movie(2, date_added=5))
    await catalog.load_all()

    assert await catalog.backfill_date_added(Collection.MAIN) == 1

    assert store.get_movie(Collection.MAIN, 1)["dateAdded"] > 5
    assert store.get_movie(Collection.MAIN, 2)["dateAdded"] == 5
    assert all(m.date_added for m in context.movies)

@pytest.mark.asyncio
async def test_offline_backfill_counts_nothing(offline_catalog, context, local_store):
    context.movies = [make_movie(1)]

    assert await offline_catalog.backfill_date_added(Collection.MAIN) == 0
    assert local_store.get_json("movies")[0]["dateAdded"]

@pytest.fixture
def omdb_lookup():
    def handler(request):
        params = request.url.params
        if params.get("t") == "Heat":
            return httpx.Response(200, json={"Response": "True", "imdbID": "tt0113277"})
        if params.get("i") == "tt0113277":
            return httpx.Response(200, json={"Response": "True", "Type": "movie", "Runtime": "170 min"})
        if params.get("i") == "tt0903747":
            return httpx.Response(200, json={"Response": "True", "Type": "series", "totalSeasons": "5"})
        if params.get("i") == "tt_broken":
            return httpx.Response(502)
        return httpx.Response(200, json={"Response": "False", "Error": "Movie not found!"})

    return OMDbService(api_key="test", transport=httpx.MockTransport(handler))

@pytest.mark.asyncio
async def test_fix_runtimes(catalog, context, store, seed, omdb_lookup):
    seed(
        Collection.MAIN,
        make_movie(1, title="Heat", year=1995),
        make_movie(2, title="Breaking Bad", imdb_id="tt0903747"),
        make_movie(3, title="Nowhere"),
        make_movie(4, title="Broken", imdb_id="tt_broken"),
        make_movie(5, runtime="88 min"),
    )
    await catalog.load_all()

    try:
        report = await catalog.fix_runtimes(Collection.MAIN, omdb_lookup)
    finally:
        await omdb_lookup.close()

    assert (report.updated, report.errors, report.skipped) == (2, 1, 1)
    heat = store.get_movie(Collection.MAIN, 1)
    assert heat["runtime"] == "170 min"
    assert heat["imdbId"] == "tt0113277"
    assert context.find(Collection.MAIN, 2).runtime == "5 Seasons"
    assert context.find(Collection.MAIN, 3).runtime is None

@pytest.mark.asyncio
async def test_html_lookup_answers_are_counted_not_fatal(catalog, context, store, seed):
    seed(
        Collection.MAIN,
        make_movie(1, title="Heat", imdb_id="tt0113277"),
        make_movie(2, title="Ran", imdb_id="tt0089881"),
    )
    await catalog.load_all()
    store.update_movie(Collection.MAIN, 2, {"title": "Ran (1985)"})

    lookup = OMDbService(
        api_key="test",
        transport=httpx.MockTransport(lambda r: httpx.Response(200, text="<html>Service Unavailable</html>")),
    )
    try:
        report = await catalog.fix_runtimes(Collection.MAIN, lookup)
    finally:
        await lookup.close()

    assert (report.updated, report.errors, report.skipped) == (0, 2, 0)
    # the list is reloaded after the batch
    assert context.find(Collection.MAIN, 2).title == "Ran (1985)"


# --- Store refusing writes ---

def refusing_store(routes):
    def handler(request):
        answer = routes.get((request.method, request.url.path))
        if answer is None:
            return httpx.Response(404, json={"success": False, "error": "Not found"})
        status_code, body = answer
        return httpx.Response(status_code, json=body)
    return StoreClient(base_url="http://store", anon_key="test", transport=httpx.MockTransport(handler))

@pytest.mark.asyncio
async def test_refused_vote_keeps_optimistic_figures(context, local_store):
    client = refusing_store({
        ("POST", "/ratings"): (500, {"success": False, "error": "boom"}),
        ("GET", "/ratings/1"): (200, {"success": True, "ratings": [], "average": 0, "count": 0}),
    })
    service = CatalogService(context, client)
    context.movies = [make_movie(1)]

    try:
        rated = await service.rate_movie(Collection.MAIN, 1, 3)
    finally:
        await client.close()

    assert (rated.user_rating, rated.rating_count, rated.community_rating) == (3, 1, 3.0)
    assert context.find(Collection.MAIN, 1) == rated
    mirrored = local_store.get_json("movies")[0]
    assert (mirrored["userRating"], mirrored["ratingCount"], mirrored["communityRating"]) == (3, 1, 3.0)

@pytest.mark.asyncio
async def test_refreshed_rating_is_mirrored(catalog, store, local_store, seed):
    seed(Collection.MAIN, make_movie(1))
    store.submit_rating(1, 1, "someone")
    await catalog.load_all()
    # another viewer votes meanwhile
    store.submit_rating(1, 5, "someone else")

    rated = await catalog.rate_movie(Collection.MAIN, 1, 3)

    assert (rated.rating_count, rated.community_rating) == (3, 3.0)
    mirrored = local_store.get_json("movies")[0]
    assert (mirrored["ratingCount"], mirrored["communityRating"]) == (3, 3.0)


# --- Offline lists ---

@pytest.mark.asyncio
async def test_offline_mark_as_watched_mirrors_both_lists(offline_catalog, context, local_store):
    context.movies = [make_movie(1)]
    context.to_watch = [make_movie(8, title="Someday"), make_movie(9)]

    watched = await offline_catalog.mark_as_watched(8)

    assert watched.id == 2
    assert [m["id"] for m in local_store.get_json("movies")] == [2, 1]
    assert [m["id"] for m in local_store.get_json("toWatchMovies")] == [9]
    assert ids(context.to_watch) == [9]

@pytest.mark.asyncio
async def test_ratings_merge_by_id_across_lists(catalog, context, store, seed):
    seed(Collection.MAIN, make_movie(4, title="Watched"))
    seed(Collection.TO_WATCH, make_movie(4, title="Planned"))
    store.submit_rating(4, 2, "someone")

    await catalog.load_all()

    assert context.find(Collection.MAIN, 4).community_rating == 2.0
    assert context.find(Collection.TO_WATCH, 4).community_rating == 2.0
