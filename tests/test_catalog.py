import pytest
from fastapi import HTTPException

from catalog import (
    DEFAULT_PRODUCT_IMAGE,
    build_keywords,
    is_coming_soon,
    is_out_of_stock,
    normalize_product,
    recompute_rating,
    round_half_up,
    sale_percentage,
    slugify,
    unique_slug,
)
from database import create_document, db


def test_round_half_up_rounds_halves_away_from_even():
    assert round_half_up(2.5) == 3
    assert round_half_up(3.5) == 4
    assert round_half_up(2.4) == 2


def test_slugify():
    assert slugify("Classic Gold Necklace Set - 22K") == "classic-gold-necklace-set-22k"
    assert slugify("  !!  ") == ""


def test_unique_slug_appends_suffix(make_product):
    make_product(name="Gold Ring")
    assert unique_slug("Gold Ring") == "gold-ring-2"
    make_product(name="Gold Ring")
    assert unique_slug("Gold Ring") == "gold-ring-3"


def test_unique_slug_ignores_own_document(make_product):
    product = make_product(name="Gold Ring")
    assert unique_slug("Gold Ring", exclude_id=product["_id"]) == "gold-ring"


def test_build_keywords_merges_and_dedupes():
    keywords = build_keywords({
        "name": "Argan Hair Oil",
        "category": "Hair",
        "tags": ["oil", "Frizz-Free"],
        "keywords": ["bestseller"],
    })
    assert keywords == ["bestseller", "argan", "hair", "oil", "frizz-free"]


def test_normalize_product_without_price_is_coming_soon():
    data = normalize_product({"name": "Rose Mist", "price": None, "images": []})
    assert data["coming_soon"] is True
    assert data["price"] is None
    assert "original_price" not in data or data["original_price"] is None
    assert data["image_url"] == DEFAULT_PRODUCT_IMAGE


def test_normalize_product_defaults_original_price_and_image():
    data = normalize_product({"name": "Ring", "price": 500, "images": ["", " /ring.png "], "stock_count": 0})
    assert data["original_price"] == 500
    assert data["image_url"] == "/ring.png"
    assert data["in_stock"] is False
    assert data["coming_soon"] is False


def test_normalize_product_rejects_negative_price():
    with pytest.raises(HTTPException) as exc:
        normalize_product({"name": "Ring", "price": -1})
    assert exc.value.status_code == 400


def test_availability_helpers():
    assert is_coming_soon({"price": None})
    assert not is_coming_soon({"price": 10, "coming_soon": False})
    assert is_out_of_stock({"in_stock": False, "stock_count": 4})
    assert is_out_of_stock({"in_stock": True, "stock_count": 0})
    assert not is_out_of_stock({"in_stock": True, "stock_count": 2})


def test_sale_percentage():
    assert sale_percentage(75, 100) == 25
    assert sale_percentage(85000, 95000) == 11
    assert sale_percentage(100, 100) == 0
    assert sale_percentage(None, 100) == 0
    assert sale_percentage(120, 100) == 0


def test_recompute_rating_rounds_to_one_decimal(make_product):
    product = make_product()
    pid = str(product["_id"])
    for rating in (5, 4, 4):
        create_document("review", {"product_id": pid, "user_id": "u", "rating": rating})

    assert recompute_rating(pid) == {"rating": 4.3, "num_reviews": 3}
    stored = db["product"].find_one({"_id": product["_id"]})
    assert stored["rating"] == 4.3
    assert stored["num_reviews"] == 3


def test_recompute_rating_without_reviews_resets(make_product):
    product = make_product()
    db["product"].update_one({"_id": product["_id"]}, {"$set": {"rating": 4.5, "num_reviews": 2}})
    assert recompute_rating(product["_id"]) == {"rating": 0, "num_reviews": 0}
