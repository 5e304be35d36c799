"""
MongoDB persistence for the election service.

The connection is configured from DATABASE_URL / DATABASE_NAME. When either is
missing `db` stays None and persistence is disabled; the engine then lives only
in process memory.

Collections:
- election: one document, the engine snapshot without its event log
- event: the event log, one document per event, keyed by `seq`
"""
import logging
import os
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel
from pymongo import MongoClient

from election import ElectionEngine

logger = logging.getLogger("database")

ELECTION_DOC_ID = "election"

DATABASE_URL = os.getenv("DATABASE_URL")
DATABASE_NAME = os.getenv("DATABASE_NAME")

_client = None
db = None
if DATABASE_URL and DATABASE_NAME:
    _client = MongoClient(DATABASE_URL)
    db = _client[DATABASE_NAME]


def _resolve(database):
    return database if database is not None else db


def create_document(collection_name: str, data: Union[BaseModel, Dict[str, Any]], database=None) -> str:
    """Insert a document with created_at/updated_at stamps and return its id as a string."""
    database = _resolve(database)
    if database is None:
        raise RuntimeError("Database not configured (set DATABASE_URL and DATABASE_NAME)")
    doc = data.model_dump() if isinstance(data, BaseModel) else dict(data)
    now = datetime.now(timezone.utc)
    doc.setdefault("created_at", now)
    doc["updated_at"] = now
    result = database[collection_name].insert_one(doc)
    return str(result.inserted_id)


def get_documents(collection_name: str, filter_dict: Optional[Dict[str, Any]] = None,
                  limit: Optional[int] = None, database=None) -> List[Dict[str, Any]]:
    database = _resolve(database)
    if database is None:
        raise RuntimeError("Database not configured (set DATABASE_URL and DATABASE_NAME)")
    return list(database[collection_name].find(filter_dict or {}, limit=limit or 0))


def save_election(engine: ElectionEngine, database=None) -> bool:
    """Persist the engine snapshot and any events not stored yet.

    Returns False when no database is configured.
    """
    database = _resolve(database)
    if database is None:
        return False

    doc = engine.to_document()
    events = doc.pop("events")
    doc["_id"] = ELECTION_DOC_ID
    doc["updated_at"] = datetime.now(timezone.utc)
    database["election"].replace_one({"_id": ELECTION_DOC_ID}, doc, upsert=True)

    last = database["event"].find_one({}, sort=[("seq", -1)])
    stored = last["seq"] if last else 0
    new_events = [e for e in events if e["seq"] > stored]
    if new_events:
        database["event"].insert_many(new_events)
    logger.debug("Saved election snapshot (%d new events)", len(new_events))
    return True


def load_election(database=None, clock=None) -> Optional[ElectionEngine]:
    database = _resolve(database)
    if database is None:
        return None
    doc = database["election"].find_one({"_id": ELECTION_DOC_ID})
    if doc is None:
        return None
    doc = {k: v for k, v in doc.items() if k not in ("_id", "updated_at")}
    doc["events"] = [
        {k: v for k, v in e.items() if k != "_id"}
        for e in database["event"].find({}, sort=[("seq", 1)])
    ]
    engine = ElectionEngine.from_document(doc, clock=clock)
    logger.info("Loaded election %r in phase %s", engine.name, engine.phase.label)
    return engine
