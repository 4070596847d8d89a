from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
import logging
import uvicorn

from config import settings
from database import create_db_and_tables
from apps.store.router import router as store_router
from apps.catalog.router import router as catalog_router
from apps.catalog.deps import build_catalog_service

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

@asynccontextmanager
async def lifespan(app: FastAPI):
    create_db_and_tables()
    app.state.catalog = build_catalog_service()
    yield
    await app.state.catalog.client.close()

app = FastAPI(title=settings.PROJECT_NAME, lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
    expose_headers=["Content-Length"],
    max_age=600,
)

# Routers
app.include_router(store_router)
app.include_router(catalog_router)

@app.get("/")
def home():
    return {"app": settings.PROJECT_NAME, "store": "/store", "catalog": "/catalog"}


if __name__ == "__main__":
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=True)
