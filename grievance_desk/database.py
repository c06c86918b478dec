# MongoDB connection, indexes and the executor used for blocking pymongo calls

import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Dict

from pymongo import ASCENDING, MongoClient

from .config import MONGODB_DB, MONGODB_URL

logger = logging.getLogger(__name__)

db_client = None
db = None
executor = ThreadPoolExecutor(max_workers=10)


def init_indexes(database) -> None:
    database.grievances.create_index([("ticket_id", ASCENDING)], unique=True)
    database.grievances.create_index("status")
    database.grievances.create_index("department")
    database.grievances.create_index("priority")
    database.grievances.create_index("complainant.phone")
    database.grievances.create_index("created_at")
    database.users.create_index([("email", ASCENDING)], unique=True)
    database.departments.create_index("name")


def lookup(collection, ids, fields=("name",)) -> Dict[str, dict]:
    """Fetch the referenced documents in one query, keyed by _id."""
    wanted = [i for i in set(ids) if i]
    if not wanted:
        return {}
    return {d["_id"]: d for d in collection.find({"_id": {"$in": wanted}}, {f: 1 for f in fields})}


async def startup_db():
    global db_client, db
    db_client = MongoClient(MONGODB_URL)
    db = db_client[MONGODB_DB]
    loop = asyncio.get_event_loop()
    await loop.run_in_executor(executor, init_indexes, db)
    logger.info("Database initialized (%s)", MONGODB_DB)


def shutdown_db():
    global db_client, db
    if db_client:
        db_client.close()
    db_client = None
    db = None


async def get_db():
    return db
