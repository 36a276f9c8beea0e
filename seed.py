"""
Sample data for a fresh database.

Clears the movies and genres collections and fills them with five genres of
three movies each. Run ``python seed.py``; the target database comes from the
usual ``VIDLY_*`` environment settings.
"""

import logging
from typing import Tuple

from database import Store, connect
from log_config import setup_logging
from schemas import Genre, GenreSnapshot, Movie, to_document

logger = logging.getLogger("vidly.seed")

DATA = [
    {
        "name": "Action",
        "movies": [
            {"title": "Murderbots 2", "dailyRentalRate": 0.99, "numberInStock": 15},
            {"title": "Cop Movie", "dailyRentalRate": 1.99, "numberInStock": 10},
            {"title": "Deathdome", "dailyRentalRate": 2.99, "numberInStock": 5},
        ],
    },
    {
        "name": "Adventure",
        "movies": [
            {"title": "Lost Kids", "dailyRentalRate": 0.99, "numberInStock": 15},
            {"title": "River Rafters", "dailyRentalRate": 1.99, "numberInStock": 10},
            {"title": "Through the Woods", "dailyRentalRate": 2.99, "numberInStock": 5},
        ],
    },
    {
        "name": "Comedy",
        "movies": [
            {"title": "Cat Commanders", "dailyRentalRate": 0.99, "numberInStock": 5},
            {"title": "Desperate Dudes", "dailyRentalRate": 1.99, "numberInStock": 10},
            {"title": "Baby Baller", "dailyRentalRate": 2.99, "numberInStock": 15},
        ],
    },
    {
        "name": "Fantasy",
        "movies": [
            {"title": "Orcs and Goblins", "dailyRentalRate": 0.99, "numberInStock": 15},
            {"title": "The Long, Cold Dark", "dailyRentalRate": 1.99, "numberInStock": 10},
            {"title": "Sewer Dwellers", "dailyRentalRate": 2.99, "numberInStock": 5},
        ],
    },
    {
        "name": "Horror",
        "movies": [
            {"title": "The Spider Queen", "dailyRentalRate": 0.99, "numberInStock": 15},
            {"title": "After Hours", "dailyRentalRate": 1.99, "numberInStock": 10},
            {"title": "Beyond the Veil", "dailyRentalRate": 2.99, "numberInStock": 5},
        ],
    },
]


def seed(store: Store) -> Tuple[int, int]:
    """Replace genres and movies with ``DATA``; returns (genres, movies) written."""
    store["movies"].delete_many({})
    store["genres"].delete_many({})

    movies = []
    for entry in DATA:
        genre = to_document(Genre, {"name": entry["name"]})
        # insert_one sets genre["_id"], which the movie snapshots need
        store["genres"].insert_one(genre)
        snapshot = GenreSnapshot.model_validate(genre)
        movies.extend(to_document(Movie, {**movie, "genres": [snapshot]}) for movie in entry["movies"])
    store["movies"].insert_many(movies)

    logger.info("Seeded %d genres and %d movies", len(DATA), len(movies))
    return len(DATA), len(movies)


if __name__ == "__main__":
    setup_logging()
    seed(connect())
