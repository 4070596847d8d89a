"""
Remote-with-local-fallback data access.

Reads prefer the store API and refresh the local mirror; writes are applied
optimistically to visible state and the mirror, then pushed to the store
best-effort. Nothing in here raises to the caller: failures are logged and
the caller keeps a consistent, possibly stale, collection.
"""
import logging
from collections import defaultdict
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, TypeVar
from apps.core.models import WireModel
from apps.catalog.local_store import LocalStore

logger = logging.getLogger(__name__)

T = TypeVar("T")

def _dump(items: Sequence[Any]) -> List[Any]:
    return [i.to_wire() if isinstance(i, WireModel) else i for i in items]

def read_mirror(local_store: LocalStore, key: str, parse: Optional[Callable[[List[Any]], List[T]]] = None) -> List[Any]:
    stored = local_store.get_json(key)
    if not isinstance(stored, list):
        return []
    try:
        return parse(stored) if parse else stored
    except Exception as e:
        logger.error("Error parsing local mirror for %s: %s", key, e)
        return []

async def load_collection(
    remote_fetcher: Callable[[], Awaitable[List[Any]]],
    local_store: LocalStore,
    key: str,
    parse: Optional[Callable[[List[Any]], List[T]]] = None,
) -> List[Any]:
    """
    Fetch a collection from the store and mirror it locally. Any failure
    (transport, HTTP status, bad body, success: false, records that do not
    parse) falls back to the mirror, or [] when there is nothing usable.
    """
    try:
        items = await remote_fetcher()
        result = parse(items) if parse else items
    except Exception as e:
        logger.error("Error fetching %s from store, using local mirror: %s", key, e)
        return read_mirror(local_store, key, parse)

    local_store.set_json(key, _dump(items))
    return result

async def mutate_collection(
    remote_mutator: Callable[[], Awaitable[Any]],
    local_store: LocalStore,
    key: str,
    new_state: Sequence[Any],
    apply: Optional[Callable[[Sequence[Any]], None]] = None,
) -> bool:
    """
    Apply new_state to visible state and the mirror unconditionally, then
    try the remote mutation. A remote failure is logged and not rolled back.
    Returns whether the store accepted the change.
    """
    if apply:
        apply(new_state)
    local_store.set_json(key, _dump(new_state))

    try:
        await remote_mutator()
    except Exception as e:
        logger.error("Error saving %s to store, kept local copy only: %s", key, e)
        return False
    return True


class RequestCoordinator:
    """
    Per-key sequencing of in-flight requests. Each call takes a token; a
    response is applied only if no newer call for the same key started
    while it was in flight, so slow stale responses cannot overwrite
    fresher state.
    """

    def __init__(self):
        self._sequence: Dict[str, int] = defaultdict(int)

    def latest(self, key: str) -> int:
        return self._sequence[key]

    async def run(self, key: str, fetch: Callable[[], Awaitable[T]], apply: Callable[[T], None]) -> bool:
        self._sequence[key] += 1
        token = self._sequence[key]

        result = await fetch()

        if token != self._sequence[key]:
            logger.info("Discarding stale response for %s (token %d, latest %d)", key, token, self._sequence[key])
            return False
        apply(result)
        return True
