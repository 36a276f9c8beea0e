"""
Database Schemas for the Movie Rental API

MongoDB collections are described below with Pydantic models. Each entity has
one ``EntitySchema`` record tying together:

- the document model (what is persisted),
- the create / update models (what clients may send),
- the collection name and natural sort key.

The constrained field types (``Name``, ``Rate``, ...) are shared by both sides
so persisted fields and request validation use the same bounds.

Collections:
- customers
- genres
- movies
- rentals
- users
"""

import re
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Annotated, Any, Dict, List, NamedTuple, Optional, Tuple, Type

from bson import ObjectId
from email_validator import EmailNotValidError, validate_email
from pydantic import AfterValidator, BaseModel, ConfigDict, EmailStr, Field, StringConstraints

# Bounds
NAME = (3, 128)
PHONE = (5, 32)
RATE = (0, 20)
STOCK = (0, 1000)
GENRE_COUNT = (1, 10)
EMAIL = (7, 69)
PASSWORD = (8, 72)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def round_cents(value: float) -> float:
    # Decimal(str()) so 1.115 rounds to 1.12 and not to the binary float below it
    return float(Decimal(str(value)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def _object_id(value: str) -> str:
    if not ObjectId.is_valid(value):
        raise ValueError("must be a valid id")
    return value


def _unique(items: List[Any]) -> List[Any]:
    if len(set(items)) != len(items):
        raise ValueError("contains a duplicate value")
    return items


PASSWORD_RULES = (
    ("lower-case letter", r"[a-z]"),
    ("upper-case letter", r"[A-Z]"),
    ("digit", r"[0-9]"),
    ("symbol", r"[^A-Za-z0-9]"),
)


def _password_complexity(value: str) -> str:
    missing = [label for label, pattern in PASSWORD_RULES if not re.search(pattern, value)]
    if missing:
        raise ValueError("must contain at least one " + ", one ".join(missing))
    return value


def _email_length(value: str) -> str:
    if not (EMAIL[0] <= len(value) <= EMAIL[1]):
        raise ValueError(f"must be {EMAIL[0]}-{EMAIL[1]} characters long")
    return value


def _rate_range(value: float) -> float:
    value = round_cents(value)
    if not (RATE[0] <= value <= RATE[1]):
        raise ValueError(f"must be between {RATE[0]} and {RATE[1]}")
    return value


def _login_email(value: str) -> str:
    # match the address as EmailStr stored it; anything unparseable just won't match
    try:
        return validate_email(value, check_deliverability=False).normalized
    except EmailNotValidError:
        return value


Name = Annotated[str, StringConstraints(strip_whitespace=True, min_length=NAME[0], max_length=NAME[1])]
Phone = Annotated[str, StringConstraints(strip_whitespace=True, min_length=PHONE[0], max_length=PHONE[1])]
Rate = Annotated[float, AfterValidator(_rate_range)]
Stock = Annotated[int, Field(ge=STOCK[0], le=STOCK[1])]
ObjectIdStr = Annotated[str, AfterValidator(_object_id)]
GenreIds = Annotated[List[ObjectIdStr], Field(min_length=GENRE_COUNT[0], max_length=GENRE_COUNT[1]), AfterValidator(_unique)]
Email = Annotated[EmailStr, AfterValidator(_email_length)]
Password = Annotated[str, StringConstraints(min_length=PASSWORD[0], max_length=PASSWORD[1]), AfterValidator(_password_complexity)]


# ---------- Embedded snapshots ----------
# Copies taken when a rental or movie is written. They are never re-synced
# with the source document.

class Snapshot(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, arbitrary_types_allowed=True)

    id: ObjectId = Field(..., alias="_id")


class GenreSnapshot(Snapshot):
    name: str


class CustomerSnapshot(Snapshot):
    name: str
    phone: str
    isGold: bool = False


class MovieSnapshot(Snapshot):
    title: str
    dailyRentalRate: float


def _unique_genres(genres: List[GenreSnapshot]) -> List[GenreSnapshot]:
    _unique([g.id for g in genres])
    return genres


# ---------- Documents ----------

class Customer(BaseModel):
    """
    Customers collection schema
    Collection name: "customers"
    """
    name: Name
    phone: Phone
    isGold: bool = Field(False, description="Gold members")


class Genre(BaseModel):
    name: Name


class Movie(BaseModel):
    title: Name
    dailyRentalRate: Rate
    numberInStock: Stock
    genres: Annotated[
        List[GenreSnapshot],
        Field(min_length=GENRE_COUNT[0], max_length=GENRE_COUNT[1]),
        AfterValidator(_unique_genres),
    ]


class Rental(BaseModel):
    """
    Rentals collection schema
    Collection name: "rentals"

    Active while ``dateReturned`` is null.
    """
    customer: CustomerSnapshot
    movie: MovieSnapshot
    dateOut: datetime = Field(default_factory=utcnow)
    dateReturned: Optional[datetime] = None
    rentalFee: Optional[float] = Field(None, ge=0)


class User(BaseModel):
    name: Name
    email: Email
    password: str = Field(..., description="BCrypt hash of password")
    isAdmin: bool = Field(False)


# ---------- Requests ----------
# Update models default every field to None without Optional: an explicit
# null is rejected, only omission leaves a field untouched.

class Strict(BaseModel):
    model_config = ConfigDict(extra="forbid")


class CustomerCreate(Strict):
    name: Name
    phone: Phone
    isGold: bool = False


class CustomerUpdate(Strict):
    name: Name = None
    phone: Phone = None
    isGold: bool = None


class GenreCreate(Strict):
    name: Name


class GenreUpdate(Strict):
    name: Name = None


class MovieCreate(Strict):
    title: Name
    dailyRentalRate: Rate
    numberInStock: Stock
    genreIds: GenreIds


class MovieUpdate(Strict):
    # numberInStock is owned by the rental workflows once a movie exists
    title: Name = None
    dailyRentalRate: Rate = None
    genreIds: GenreIds = None


class RentalRequest(Strict):
    customerId: ObjectIdStr
    movieId: ObjectIdStr


class UserCreate(Strict):
    name: Name
    email: Email
    password: Password


class LoginRequest(Strict):
    email: Annotated[str, StringConstraints(max_length=255), AfterValidator(_login_email)]
    password: Annotated[str, StringConstraints(max_length=255)]


# ---------- Registry ----------

class EntitySchema(NamedTuple):
    kind: str
    collection: str
    document: Type[BaseModel]
    create: Type[BaseModel]
    update: Optional[Type[BaseModel]]
    sort: List[Tuple[str, int]]
    # persisted field -> request field it is built from
    derived: Dict[str, str] = {}
    # persisted fields only the server writes
    managed: Tuple[str, ...] = ()
    # message for a unique-field clash
    conflict: str = "Duplicate value"


CUSTOMERS = EntitySchema("Customer", "customers", Customer, CustomerCreate, CustomerUpdate, [("name", 1)])
GENRES = EntitySchema(
    "Genre", "genres", Genre, GenreCreate, GenreUpdate, [("name", 1)],
    conflict="Genre name already exists",
)
MOVIES = EntitySchema(
    "Movie", "movies", Movie, MovieCreate, MovieUpdate, [("title", 1)],
    derived={"genres": "genreIds"},
)
RENTALS = EntitySchema(
    "Rental", "rentals", Rental, RentalRequest, None, [("dateOut", -1)],
    derived={"customer": "customerId", "movie": "movieId"},
    managed=("dateOut", "dateReturned", "rentalFee"),
)
USERS = EntitySchema(
    "User", "users", User, UserCreate, None, [("name", 1)],
    managed=("isAdmin",),
    conflict="Email already in use",
)

ENTITIES = (CUSTOMERS, GENRES, MOVIES, RENTALS, USERS)


def to_document(model: Type[BaseModel], value: Dict[str, Any]) -> Dict[str, Any]:
    """Map a validated value to the dict that gets stored."""
    return model.model_validate(value).model_dump(by_alias=True)
