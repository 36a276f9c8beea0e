from bson import ObjectId

import rentals

from .helpers import auth_header, rental_doc, stock

URL = "/api/returns"


def return_body(customer, movie):
    return {"customerId": str(customer["_id"]), "movieId": str(movie["_id"])}


def test_requires_token(client, customer, movie):
    assert client.post(URL, json=return_body(customer, movie)).status_code == 401


def test_invalid_token(client, customer, movie):
    assert client.post(URL, json=return_body(customer, movie), headers=auth_header("a")).status_code == 400


def test_invalid_body(client, token):
    res = client.post(URL, json={"customerId": str(ObjectId())}, headers=auth_header(token))

    assert res.status_code == 400
    assert '"movieId"' in res.json()["detail"]


def test_no_active_rental(client, store, customer, movie, token):
    store["rentals"].insert_one(rental_doc(customer, movie, returned=True))

    res = client.post(URL, json=return_body(customer, movie), headers=auth_header(token))

    assert res.status_code == 404
    assert res.json()["detail"] == "No active rental for customer and movie"
    assert stock(store, movie) == 1


def test_returns_with_fee(client, store, customer, movie, token):
    store["movies"].update_one({"_id": movie["_id"]}, {"$set": {"numberInStock": 0}})
    rental = rental_doc(customer, movie, days_out=7)
    store["rentals"].insert_one(rental)

    res = client.post(URL, json=return_body(customer, movie), headers=auth_header(token))

    assert res.status_code == 200
    assert res.json()["id"] == str(rental["_id"])
    assert res.json()["rentalFee"] == 7 * 2.5
    assert res.json()["dateReturned"] is not None
    assert stock(store, movie) == 1


def test_transaction_failure(client, store, customer, movie, token, monkeypatch):
    def boom(*args, **kwargs):
        raise RuntimeError("fake error in return transaction")

    store["rentals"].insert_one(rental_doc(customer, movie, days_out=2))
    monkeypatch.setattr(rentals, "_restore_copy", boom)

    res = client.post(URL, json=return_body(customer, movie), headers=auth_header(token))

    assert res.status_code == 500
    assert store["rentals"].find_one({})["dateReturned"] is None
    assert stock(store, movie) == 1
