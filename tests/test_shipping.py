import pytest

from database import db
from shipping_service import (
    DEFAULT_SHIPPING_CHARGE,
    SHIPPING_SETTING_KEY,
    InvalidShippingAmount,
    get_shipping_charge,
    parse_amount,
    update_shipping_charge,
)


@pytest.mark.parametrize("raw, expected", [
    (250, 250),
    ("250", 250),
    (199.5, 200),
    (0, 0),
    (-1, None),
    (True, None),
    (None, None),
    ("abc", None),
    (float("inf"), None),
])
def test_parse_amount(raw, expected):
    assert parse_amount(raw) == expected


def test_default_charge_when_unset():
    assert get_shipping_charge() == DEFAULT_SHIPPING_CHARGE


def test_invalid_stored_value_falls_back_to_default():
    db["setting"].insert_one({"key": SHIPPING_SETTING_KEY, "value": {"amount": "lots"}})
    assert get_shipping_charge() == DEFAULT_SHIPPING_CHARGE


def test_update_rejects_negative():
    with pytest.raises(InvalidShippingAmount):
        update_shipping_charge(-5)


def test_update_upserts_single_setting():
    update_shipping_charge(300)
    update_shipping_charge(350)
    assert db["setting"].count_documents({"key": SHIPPING_SETTING_KEY}) == 1
    assert get_shipping_charge() == 350


def test_shipping_endpoints(client, user_headers, admin_headers):
    assert client.get("/api/shipping").json()["data"] == {"amount": DEFAULT_SHIPPING_CHARGE}

    assert client.put("/api/shipping", json={"amount": 400}, headers=user_headers).status_code == 403
    assert client.put("/api/shipping", json={"amount": -1}, headers=admin_headers).status_code == 400

    res = client.put("/api/shipping", json={"amount": "450"}, headers=admin_headers)
    assert res.status_code == 200
    assert res.json()["data"]["amount"] == 450
    assert client.get("/api/shipping").json()["data"]["amount"] == 450
