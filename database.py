"""
MongoDB access for the rental API.

Collections are addressed by name (``store["movies"]``). Writes that touch more
than one collection go through ``Store.transaction()``, which wraps a pymongo
client session; the deployment must be a replica set for that to work.
"""

import logging
from contextlib import contextmanager
from typing import Optional

from pymongo import ASCENDING, MongoClient
from pymongo.client_session import ClientSession
from pymongo.database import Database

import config

logger = logging.getLogger("vidly.db")


class Transaction:
    """Handle for one open transaction scope."""

    def __init__(self, session: Optional[ClientSession]):
        self.session = session

    def abort(self) -> None:
        self.session.abort_transaction()


class Store:
    def __init__(self, db: Database):
        self.db = db

    def __getitem__(self, name: str):
        return self.db[name]

    @contextmanager
    def transaction(self):
        """Open a session and a transaction on it.

        Leaving the block normally commits; an exception aborts and propagates.
        Calling ``Transaction.abort()`` inside the block ends the transaction
        without committing and the block then exits cleanly.
        """
        with self.db.client.start_session() as session:
            with session.start_transaction():
                yield Transaction(session)

    def ensure_indexes(self) -> None:
        self.db["genres"].create_index([("name", ASCENDING)], unique=True)
        self.db["users"].create_index([("email", ASCENDING)], unique=True)
        # one active rental per customer and movie
        self.db["rentals"].create_index(
            [("customer._id", ASCENDING), ("movie._id", ASCENDING)],
            unique=True,
            partialFilterExpression={"dateReturned": {"$type": "null"}},
            name="active_rental",
        )
        self.db["rentals"].create_index([("dateOut", ASCENDING)])


_store: Optional[Store] = None


def connect() -> Store:
    global _store
    client = MongoClient(config.DATABASE_URL, tz_aware=True)
    _store = Store(client[config.DATABASE_NAME])
    logger.info("Connected to %s/%s", config.DATABASE_URL, config.DATABASE_NAME)
    return _store


def get_store() -> Store:
    if _store is None:
        return connect()
    return _store
