from datetime import datetime, timedelta, timezone


def stock(store, movie):
    return store["movies"].find_one({"_id": movie["_id"]})["numberInStock"]


def rental_doc(customer, movie, days_out=0, returned=False):
    """A rental as the rent workflow would have stored it ``days_out`` days ago."""
    date_out = datetime.now(timezone.utc) - timedelta(days=days_out, minutes=5)
    return {
        "customer": {k: customer[k] for k in ("_id", "name", "phone", "isGold")},
        "movie": {k: movie[k] for k in ("_id", "title", "dailyRentalRate")},
        "dateOut": date_out,
        "dateReturned": datetime.now(timezone.utc) if returned else None,
        "rentalFee": 0 if returned else None,
    }


def auth_header(token):
    return {"x-auth-token": token}
