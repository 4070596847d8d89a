from datetime import datetime
from sqlmodel import SQLModel, Field

class KVEntry(SQLModel, table=True):
    key: str = Field(primary_key=True) # e.g. movie:12, comment:12:1700000000000
    value: str # JSON document

    updated_at: datetime = Field(default_factory=datetime.utcnow)
