"""Database helper (Mongo only).

Requires a MongoDB reachable via MONGO_URI (e.g., mongodb://localhost:27017).
Tests swap the database through the API dependency overrides instead of this module.
"""
import os
from functools import lru_cache
from pymongo import MongoClient
from pymongo.database import Database


@lru_cache(maxsize=1)
def get_db() -> Database:
    uri = os.getenv("MONGO_URI", "mongodb://localhost:27017")
    db_name = os.getenv("DB_NAME", "skillmine")
    client = MongoClient(uri, serverSelectionTimeoutMS=800)
    client.admin.command("ping")
    return client[db_name]


def ping(db: Database) -> bool:
    try:
        db.command("ping")
        return True
    except Exception:
        return False
