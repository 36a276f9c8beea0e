"""
Rent, return and cancel workflows.

Each workflow that touches both ``movies`` and ``rentals`` runs inside a single
store transaction. Business-rule failures abort the transaction and come back
as an ``Outcome`` carrying a ``Rejection``; anything else that goes wrong rolls
the transaction back and is raised as ``TransactionFailed``.

Movie stock is only ever changed here, by ``_take_copy`` and ``_restore_copy``,
and both require an open ``Transaction``.
"""

import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Dict, NamedTuple, Optional

from bson import ObjectId
from pymongo.errors import DuplicateKeyError

from database import Store, Transaction
from schemas import CustomerSnapshot, MovieSnapshot, Rental, to_document, utcnow

logger = logging.getLogger("vidly.rentals")


class Rejection(NamedTuple):
    status: int
    message: str


INVALID_CUSTOMER = Rejection(400, "Invalid customer id")
INVALID_MOVIE = Rejection(400, "Invalid movie id")
OUT_OF_STOCK = Rejection(400, "Movie out of stock")
ALREADY_RENTING = Rejection(400, "Customer is already renting this movie")
NO_ACTIVE_RENTAL = Rejection(404, "No active rental for customer and movie")
RENTAL_GONE = Rejection(404, "Rental id not found")


class Outcome(NamedTuple):
    rental: Optional[Dict[str, Any]] = None
    rejection: Optional[Rejection] = None


class TransactionFailed(Exception):
    """A transaction was rolled back for a reason other than a business rule."""


@contextmanager
def _failures(workflow: str):
    try:
        yield
    except Exception as exc:
        logger.exception("%s transaction failed and was rolled back", workflow)
        raise TransactionFailed(workflow) from exc


def _aware(value: datetime) -> datetime:
    # pymongo hands back naive UTC datetimes unless the client is tz_aware
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def rental_fee(rental: Dict[str, Any], returned: datetime) -> float:
    """Whole days out, truncated, times the daily rate captured at rent time."""
    days = max((_aware(returned) - _aware(rental["dateOut"])).days, 0)
    return round(days * rental["movie"]["dailyRentalRate"], 2)


def find_active_rental(
    store: Store, customer_id, movie_id, txn: Optional[Transaction] = None
) -> Optional[Dict[str, Any]]:
    return store["rentals"].find_one(
        {
            "customer._id": ObjectId(customer_id),
            "movie._id": ObjectId(movie_id),
            "dateReturned": None,
        },
        session=txn.session if txn else None,
    )


def _take_copy(store: Store, txn: Transaction, movie_id: ObjectId) -> bool:
    result = store["movies"].update_one(
        {"_id": movie_id, "numberInStock": {"$gte": 1}},
        {"$inc": {"numberInStock": -1}},
        session=txn.session,
    )
    return result.modified_count == 1


def _restore_copy(store: Store, txn: Transaction, movie_id: ObjectId) -> None:
    store["movies"].update_one(
        {"_id": movie_id},
        {"$inc": {"numberInStock": 1}},
        session=txn.session,
    )


def rent(store: Store, customer_id, movie_id) -> Outcome:
    customer = store["customers"].find_one({"_id": ObjectId(customer_id)})
    if customer is None:
        return Outcome(rejection=INVALID_CUSTOMER)

    with _failures("rent"):
        with store.transaction() as txn:
            movie = store["movies"].find_one({"_id": ObjectId(movie_id)}, session=txn.session)
            if movie is None:
                txn.abort()
                return Outcome(rejection=INVALID_MOVIE)
            if find_active_rental(store, customer_id, movie_id, txn) is not None:
                txn.abort()
                return Outcome(rejection=ALREADY_RENTING)
            if movie.get("numberInStock", 0) < 1 or not _take_copy(store, txn, movie["_id"]):
                txn.abort()
                return Outcome(rejection=OUT_OF_STOCK)
            # Writing the movie makes concurrent rents of it conflict; a rent
            # that committed since the first lookup shows up here.
            if find_active_rental(store, customer_id, movie_id, txn) is not None:
                txn.abort()
                return Outcome(rejection=ALREADY_RENTING)

            rental = to_document(Rental, {
                "customer": CustomerSnapshot.model_validate(customer),
                "movie": MovieSnapshot.model_validate(movie),
            })
            try:
                store["rentals"].insert_one(rental, session=txn.session)
            except DuplicateKeyError:
                txn.abort()
                return Outcome(rejection=ALREADY_RENTING)

    logger.info("Rented movie %s to customer %s", movie_id, customer_id)
    return Outcome(rental=rental)


def return_rental(store: Store, customer_id, movie_id) -> Outcome:
    with _failures("return"):
        with store.transaction() as txn:
            rental = find_active_rental(store, customer_id, movie_id, txn)
            if rental is None:
                txn.abort()
                return Outcome(rejection=NO_ACTIVE_RENTAL)

            returned = utcnow()
            fee = rental_fee(rental, returned)
            store["rentals"].update_one(
                {"_id": rental["_id"]},
                {"$set": {"dateReturned": returned, "rentalFee": fee}},
                session=txn.session,
            )
            _restore_copy(store, txn, rental["movie"]["_id"])

    rental.update(dateReturned=returned, rentalFee=fee)
    logger.info("Returned rental %s, fee %s", rental["_id"], fee)
    return Outcome(rental=rental)


def cancel(store: Store, rental: Dict[str, Any]) -> Outcome:
    """Delete ``rental``; an unreturned one gives its copy back to stock."""
    if rental.get("dateReturned") is not None:
        result = store["rentals"].delete_one({"_id": rental["_id"]})
        if result.deleted_count == 0:
            return Outcome(rejection=RENTAL_GONE)
        return Outcome(rental=rental)

    with _failures("cancel"):
        with store.transaction() as txn:
            # only while still active, so a concurrent return is not restocked twice
            result = store["rentals"].delete_one(
                {"_id": rental["_id"], "dateReturned": None},
                session=txn.session,
            )
            if result.deleted_count == 0:
                txn.abort()
                current = store["rentals"].find_one({"_id": rental["_id"]})
                if current is None or current.get("dateReturned") is None:
                    return Outcome(rejection=RENTAL_GONE)
                # returned since it was loaded, so its copy is already back
                return cancel(store, current)
            _restore_copy(store, txn, rental["movie"]["_id"])

    logger.info("Cancelled active rental %s", rental["_id"])
    return Outcome(rental=rental)
