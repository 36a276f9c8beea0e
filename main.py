import logging
from contextlib import asynccontextmanager
from typing import Any, Optional

from bson import ObjectId
from fastapi import Body, Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

import config
from auth import create_access_token, hash_password, verify_password
from database import Store, get_store
from log_config import setup_logging
from pipeline import (
    Context,
    admin,
    authenticate,
    cancel_rental,
    find,
    list_all,
    post,
    put,
    reject,
    remove,
    rent,
    return_rental,
    run,
    send,
    unique,
    validate_body,
    validate_id,
)
from schemas import CUSTOMERS, GENRES, MOVIES, RENTALS, USERS, GenreSnapshot, LoginRequest

logger = logging.getLogger("vidly")


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    config.check()
    get_store().ensure_indexes()
    logger.info("Listening on port %s...", config.PORT)
    yield


# App and CORS
app = FastAPI(title="Vidly API", lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["x-auth-token"],
)


@app.exception_handler(RequestValidationError)
async def request_invalid(request: Request, exc: RequestValidationError):
    return JSONResponse(status_code=400, content={"detail": "Invalid request body"})


@app.exception_handler(Exception)
async def unhandled(request: Request, exc: Exception):
    logger.error("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(status_code=500, content={"detail": "Something failed"})


# Helpers

def context(request: Request, store: Store, id: Optional[str] = None, body: Any = None) -> Context:
    return Context(store, request.headers, id=id, body=body)


def resolve_genres(ctx: Context):
    """Swap ``genreIds`` in the body for embedded genre snapshots."""
    genre_ids = ctx.body.pop("genreIds", None)
    if genre_ids is None:
        return None
    found = {
        str(g["_id"]): g
        for g in ctx.store[GENRES.collection].find({"_id": {"$in": [ObjectId(i) for i in genre_ids]}})
    }
    if len(found) != len(genre_ids):
        return reject(400, "Invalid genre id")
    ctx.body["genres"] = [GenreSnapshot.model_validate(found[i]).model_dump(by_alias=True) for i in genre_ids]
    return None


def hash_user_password(ctx: Context):
    ctx.body["password"] = hash_password(ctx.body["password"])
    return None


def issue_token(ctx: Context):
    ctx.response_headers["x-auth-token"] = create_access_token(ctx.doc)
    ctx.doc = {key: ctx.doc[key] for key in ("_id", "name", "email")}
    return None


def load_current_user(ctx: Context):
    user_id = ctx.user["id"]
    ctx.doc = ctx.store[USERS.collection].find_one({"_id": ObjectId(user_id)}) if ObjectId.is_valid(user_id) else None
    if ctx.doc is None:
        return reject(400, "User not found")
    return None


def check_credentials(ctx: Context):
    user = ctx.store[USERS.collection].find_one({"email": ctx.body["email"]})
    if not user or not verify_password(ctx.body["password"], user.get("password", "")):
        return reject(400, "Invalid email or password")
    ctx.doc = {"access_token": create_access_token(user), "token_type": "bearer"}
    return None


@app.get("/")
def home():
    return {"message": "Vidly API home"}


# Auth Routes
@app.post("/api/login")
def login(request: Request, body: Any = Body(None), store: Store = Depends(get_store)):
    return run(context(request, store, body=body), [validate_body(LoginRequest), check_credentials, send])


@app.post("/api/users")
def register(request: Request, body: Any = Body(None), store: Store = Depends(get_store)):
    return run(context(request, store, body=body), [
        validate_body(USERS.create), unique(USERS, "email"), hash_user_password, post(USERS), issue_token, send,
    ])


@app.get("/api/users/me")
def me(request: Request, store: Store = Depends(get_store)):
    return run(context(request, store), [authenticate, load_current_user, send])


@app.get("/api/users")
def list_users(request: Request, store: Store = Depends(get_store)):
    return run(context(request, store), [authenticate, admin, list_all(USERS, {"password": 0}), send])


# Customers
@app.get("/api/customers")
def list_customers(request: Request, store: Store = Depends(get_store)):
    return run(context(request, store), [authenticate, list_all(CUSTOMERS), send])


@app.get("/api/customers/{customer_id}")
def get_customer(customer_id: str, request: Request, store: Store = Depends(get_store)):
    return run(context(request, store, customer_id), [authenticate, validate_id, find(CUSTOMERS), send])


@app.post("/api/customers")
def create_customer(request: Request, body: Any = Body(None), store: Store = Depends(get_store)):
    return run(context(request, store, body=body), [
        authenticate, validate_body(CUSTOMERS.create), post(CUSTOMERS), send,
    ])


@app.put("/api/customers/{customer_id}")
def update_customer(customer_id: str, request: Request, body: Any = Body(None), store: Store = Depends(get_store)):
    return run(context(request, store, customer_id, body), [
        authenticate, validate_id, find(CUSTOMERS), validate_body(CUSTOMERS.update, CUSTOMERS.kind),
        put(CUSTOMERS), send,
    ])


@app.delete("/api/customers/{customer_id}")
def delete_customer(customer_id: str, request: Request, store: Store = Depends(get_store)):
    return run(context(request, store, customer_id), [authenticate, admin, validate_id, remove(CUSTOMERS), send])


# Genres
@app.get("/api/genres")
def list_genres(request: Request, store: Store = Depends(get_store)):
    return run(context(request, store), [list_all(GENRES), send])


@app.get("/api/genres/{genre_id}")
def get_genre(genre_id: str, request: Request, store: Store = Depends(get_store)):
    return run(context(request, store, genre_id), [validate_id, find(GENRES), send])


@app.post("/api/genres")
def create_genre(request: Request, body: Any = Body(None), store: Store = Depends(get_store)):
    return run(context(request, store, body=body), [
        authenticate, validate_body(GENRES.create), unique(GENRES, "name"), post(GENRES), send,
    ])


@app.put("/api/genres/{genre_id}")
def update_genre(genre_id: str, request: Request, body: Any = Body(None), store: Store = Depends(get_store)):
    return run(context(request, store, genre_id, body), [
        authenticate, validate_id, find(GENRES), validate_body(GENRES.update, GENRES.kind),
        unique(GENRES, "name"), put(GENRES), send,
    ])


@app.delete("/api/genres/{genre_id}")
def delete_genre(genre_id: str, request: Request, store: Store = Depends(get_store)):
    return run(context(request, store, genre_id), [authenticate, admin, validate_id, remove(GENRES), send])


# Movies
@app.get("/api/movies")
def list_movies(request: Request, store: Store = Depends(get_store)):
    return run(context(request, store), [list_all(MOVIES), send])


@app.get("/api/movies/{movie_id}")
def get_movie(movie_id: str, request: Request, store: Store = Depends(get_store)):
    return run(context(request, store, movie_id), [validate_id, find(MOVIES), send])


@app.post("/api/movies")
def create_movie(request: Request, body: Any = Body(None), store: Store = Depends(get_store)):
    return run(context(request, store, body=body), [
        authenticate, validate_body(MOVIES.create), resolve_genres, post(MOVIES), send,
    ])


@app.put("/api/movies/{movie_id}")
def update_movie(movie_id: str, request: Request, body: Any = Body(None), store: Store = Depends(get_store)):
    return run(context(request, store, movie_id, body), [
        authenticate, validate_id, find(MOVIES), validate_body(MOVIES.update, MOVIES.kind),
        resolve_genres, put(MOVIES), send,
    ])


@app.delete("/api/movies/{movie_id}")
def delete_movie(movie_id: str, request: Request, store: Store = Depends(get_store)):
    return run(context(request, store, movie_id), [authenticate, admin, validate_id, remove(MOVIES), send])


# Rentals and returns
@app.get("/api/rentals")
def list_rentals(request: Request, store: Store = Depends(get_store)):
    return run(context(request, store), [authenticate, list_all(RENTALS), send])


@app.get("/api/rentals/{rental_id}")
def get_rental(rental_id: str, request: Request, store: Store = Depends(get_store)):
    return run(context(request, store, rental_id), [authenticate, validate_id, find(RENTALS), send])


@app.post("/api/rentals")
def create_rental(request: Request, body: Any = Body(None), store: Store = Depends(get_store)):
    return run(context(request, store, body=body), [authenticate, validate_body(RENTALS.create), rent, send])


@app.delete("/api/rentals/{rental_id}")
def delete_rental(rental_id: str, request: Request, store: Store = Depends(get_store)):
    return run(context(request, store, rental_id), [
        authenticate, admin, validate_id, find(RENTALS), cancel_rental, send,
    ])


@app.post("/api/returns")
def create_return(request: Request, body: Any = Body(None), store: Store = Depends(get_store)):
    return run(context(request, store, body=body), [authenticate, validate_body(RENTALS.create), return_rental, send])


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=config.PORT)
