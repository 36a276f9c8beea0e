"""
Request pipeline.

A route is an ordered list of steps run against one ``Context``. A step
returns ``None`` to hand over to the next step, or a ``Response`` to end the
request there. Rejections are ordinary return values; exceptions are left for
real failures.

    run(ctx, [authenticate, validate_id, find(CUSTOMERS), send])
"""

import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Mapping, Optional

from bson import ObjectId
from fastapi.responses import JSONResponse, Response
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

import rentals
import validation
from auth import InvalidToken, decode_token
from database import Store
from schemas import EntitySchema, to_document

logger = logging.getLogger("vidly.pipeline")


class Context:
    def __init__(self, store: Store, headers: Mapping[str, str], id: Optional[str] = None, body: Any = None):
        self.store = store
        self.headers = headers
        self.id = id
        self.body = body
        self.user: Optional[Dict[str, Any]] = None
        self.doc: Any = None
        self.response_headers: Dict[str, str] = {}


Step = Callable[[Context], Optional[Response]]


def reject(status_code: int, detail: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"detail": detail})


def run(ctx: Context, steps: List[Step]) -> Response:
    for step in steps:
        response = step(ctx)
        if response is not None:
            return response
    raise RuntimeError("pipeline finished without a response")


def serialize(value: Any) -> Any:
    """Make a stored document JSON-ready: ``_id`` becomes ``id``, passwords are dropped."""
    if isinstance(value, list):
        return [serialize(v) for v in value]
    if isinstance(value, dict):
        return {
            ("id" if key == "_id" else key): serialize(v)
            for key, v in value.items()
            if key != "password"
        }
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    return value


# ---------- Auth ----------

def _token(headers: Mapping[str, str]) -> Optional[str]:
    token = headers.get("x-auth-token")
    if token:
        return token
    scheme, _, credentials = (headers.get("authorization") or "").partition(" ")
    if scheme.lower() == "bearer" and credentials:
        return credentials
    return None


def authenticate(ctx: Context) -> Optional[Response]:
    token = _token(ctx.headers)
    if not token:
        return reject(401, "Access denied. No token provided.")
    try:
        ctx.user = decode_token(token)
    except InvalidToken:
        return reject(400, "Invalid token.")
    return None


def admin(ctx: Context) -> Optional[Response]:
    if not ctx.user or not ctx.user.get("isAdmin"):
        return reject(403, "Access denied.")
    return None


# ---------- Loading ----------

def validate_id(ctx: Context) -> Optional[Response]:
    # 404 rather than 400 so a bad id looks the same as a missing one
    if not ctx.id or not ObjectId.is_valid(ctx.id):
        return reject(404, "Invalid id")
    return None


def find(schema: EntitySchema) -> Step:
    def step(ctx: Context) -> Optional[Response]:
        ctx.doc = ctx.store[schema.collection].find_one({"_id": ObjectId(ctx.id)})
        if ctx.doc is None:
            return reject(404, f"{schema.kind} id not found")
        return None
    return step


def list_all(schema: EntitySchema, projection: Optional[Dict[str, int]] = None) -> Step:
    def step(ctx: Context) -> Optional[Response]:
        ctx.doc = list(ctx.store[schema.collection].find({}, projection).sort(schema.sort))
        return None
    return step


# ---------- Validation ----------

def validate_body(model, kind: Optional[str] = None) -> Step:
    """Run the body through ``model``; pass ``kind`` for partial updates."""
    def step(ctx: Context) -> Optional[Response]:
        value, error = validation.validate(model, ctx.body, kind)
        if error:
            return reject(400, error)
        ctx.body = value
        return None
    return step


def unique(schema: EntitySchema, field: str) -> Step:
    def step(ctx: Context) -> Optional[Response]:
        value = ctx.body.get(field)
        if value is None:
            return None
        query: Dict[str, Any] = {field: value}
        if ctx.doc is not None:
            query["_id"] = {"$ne": ctx.doc["_id"]}
        if ctx.store[schema.collection].find_one(query) is not None:
            return reject(400, schema.conflict)
        return None
    return step


# ---------- Writes ----------

def post(schema: EntitySchema) -> Step:
    def step(ctx: Context) -> Optional[Response]:
        document = to_document(schema.document, ctx.body)
        try:
            ctx.store[schema.collection].insert_one(document)
        except DuplicateKeyError:
            return reject(400, schema.conflict)
        ctx.doc = document
        logger.info("Created %s %s", schema.kind, document["_id"])
        return None
    return step


def put(schema: EntitySchema) -> Step:
    def step(ctx: Context) -> Optional[Response]:
        try:
            ctx.doc = ctx.store[schema.collection].find_one_and_update(
                {"_id": ctx.doc["_id"]},
                {"$set": ctx.body},
                return_document=ReturnDocument.AFTER,
            )
        except DuplicateKeyError:
            return reject(400, schema.conflict)
        if ctx.doc is None:
            return reject(404, f"{schema.kind} id not found")
        return None
    return step


def remove(schema: EntitySchema) -> Step:
    def step(ctx: Context) -> Optional[Response]:
        ctx.doc = ctx.store[schema.collection].find_one_and_delete({"_id": ObjectId(ctx.id)})
        if ctx.doc is None:
            return reject(404, f"{schema.kind} id not found")
        logger.info("Deleted %s %s", schema.kind, ctx.id)
        return None
    return step


# ---------- Rentals ----------

def _settle(ctx: Context, workflow: Callable[[], rentals.Outcome]) -> Optional[Response]:
    try:
        outcome = workflow()
    except rentals.TransactionFailed:
        return reject(500, "Transaction failed. Data unchanged.")
    if outcome.rejection is not None:
        return reject(outcome.rejection.status, outcome.rejection.message)
    ctx.doc = outcome.rental
    return None


def rent(ctx: Context) -> Optional[Response]:
    return _settle(ctx, lambda: rentals.rent(ctx.store, ctx.body["customerId"], ctx.body["movieId"]))


def return_rental(ctx: Context) -> Optional[Response]:
    return _settle(ctx, lambda: rentals.return_rental(ctx.store, ctx.body["customerId"], ctx.body["movieId"]))


def cancel_rental(ctx: Context) -> Optional[Response]:
    return _settle(ctx, lambda: rentals.cancel(ctx.store, ctx.doc))


# ---------- Response ----------

def send(ctx: Context) -> Optional[Response]:
    return JSONResponse(content=serialize(ctx.doc), headers=ctx.response_headers)
