import asyncio
import sys
import os
sys.path.append(os.getcwd())

from apps.core.models import Collection
from apps.core.omdb import OMDbService
from apps.catalog.deps import build_catalog_service
from config import settings

async def fix_runtimes(collection: Collection):
    if not settings.OMDB_API_KEY:
        print("ERROR: OMDB_API_KEY is missing!")
        return

    service = build_catalog_service()
    omdb = OMDbService()
    try:
        await service.load(collection)
        report = await service.fix_runtimes(collection, omdb)
        print(f"Runtimes updated for {collection.value}")
        print(f"Success: {report.updated}  Errors: {report.errors}  Skipped: {report.skipped}")
    finally:
        await omdb.close()
        await service.client.close()

if __name__ == "__main__":
    target = Collection(sys.argv[1]) if len(sys.argv) > 1 else Collection.MAIN
    asyncio.run(fix_runtimes(target))
