import asyncio
import sys
import os
sys.path.append(os.getcwd())

from apps.core.models import Collection
from apps.catalog.deps import build_catalog_service

async def backfill():
    service = build_catalog_service()
    try:
        await service.load_all()
        for collection in Collection:
            updated = await service.backfill_date_added(collection)
            print(f"{collection.value}: stamped dateAdded on {updated} movies")
    finally:
        await service.client.close()

if __name__ == "__main__":
    asyncio.run(backfill())
