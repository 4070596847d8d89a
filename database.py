from pathlib import Path
from sqlmodel import SQLModel, create_engine, Session
from config import settings

# SQLite connection
connect_args = {"check_same_thread": False}
if settings.DATABASE_URL.startswith("sqlite:///"):
    Path(settings.DATABASE_URL.replace("sqlite:///", "", 1)).parent.mkdir(parents=True, exist_ok=True)
engine = create_engine(settings.DATABASE_URL, connect_args=connect_args)

def create_db_and_tables():
    # Registers the store tables on SQLModel.metadata
    import apps.store.models  # noqa: F401
    SQLModel.metadata.create_all(engine)

def get_session():
    with Session(engine) as session:
        yield session
