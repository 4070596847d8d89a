import sys
import os
sys.path.append(os.getcwd())

from sqlmodel import Session, select, func
from database import engine, create_db_and_tables
from apps.store.models import KVEntry

PREFIXES = ["movie:", "towatch:", "comment:", "rating:"]

def verify():
    print("Verifying store database...")
    try:
        create_db_and_tables()
        with Session(engine) as session:
            total = session.exec(select(func.count()).select_from(KVEntry)).one()
            print(f"Read successful. Entries: {total}")

            for prefix in PREFIXES:
                count = session.exec(
                    select(func.count()).select_from(KVEntry).where(KVEntry.key.startswith(prefix))
                ).one()
                print(f"  {prefix:<10} {count}")
    except Exception as e:
        print(f"Database check failed: {e}")

if __name__ == "__main__":
    verify()
