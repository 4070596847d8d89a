from fastapi import Request
from apps.core.omdb import OMDbService
from apps.catalog.client import StoreClient
from apps.catalog.context import AppContext
from apps.catalog.local_store import LocalStore
from apps.catalog.services import CatalogService
from config import settings

def build_catalog_service() -> CatalogService:
    context = AppContext.restore(LocalStore(settings.LOCAL_MIRROR_PATH))
    return CatalogService(context, StoreClient())

async def get_catalog_service(request: Request) -> CatalogService:
    service: CatalogService = request.app.state.catalog
    # First request pulls both lists, comments and ratings
    if not service.loaded:
        await service.load_all()
    return service

async def get_lookup():
    omdb = OMDbService()
    try:
        yield omdb
    finally:
        await omdb.close()
