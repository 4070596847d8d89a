import os
from dotenv import load_dotenv
from pydantic_settings import BaseSettings, SettingsConfigDict

load_dotenv()

class Settings(BaseSettings):
    PROJECT_NAME: str = "Trash Bin"
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    # Key-value store backing the catalog
    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///data/trash_bin.db")

    # Catalog client -> store API
    STORE_URL: str = os.getenv("STORE_URL", "http://localhost:8000/store")
    STORE_ANON_KEY: str = os.getenv("STORE_ANON_KEY", "")
    HTTP_TIMEOUT: float = 10.0

    # Local mirror used when the store is unreachable
    LOCAL_MIRROR_PATH: str = os.getenv("LOCAL_MIRROR_PATH", "data/local_mirror.json")

    # OMDb (runtime / plot repair)
    OMDB_API_KEY: str = os.getenv("OMDB_API_KEY", "")
    OMDB_BASE_URL: str = "https://www.omdbapi.com/"
    OMDB_REQUEST_DELAY: float = 0.2

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

settings = Settings()
