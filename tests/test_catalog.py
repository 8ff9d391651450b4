import pytest

import catalog
from errors import NotFound, ValidationError


@pytest.fixture
def categories(data):
    return [
        data.insert("categories", {"name": name, "slug": name.lower(), "display_order": order})
        for order, name in enumerate(["Home", "Office", "Kitchen", "Garden", "Outdoor"])
    ]


def test_list_products_only_active(data, products):
    data.update("products", {"is_active": False}, {"id": products["notebook"]["id"]})

    names = {p.name for p in catalog.list_products(data)}

    assert "Notebook" not in names
    assert "Desk Lamp" in names


def test_search_matches_name_or_description_case_insensitively(data, products):
    assert [p.name for p in catalog.list_products(data, search="LAMP")] == ["Desk Lamp"]
    assert [p.name for p in catalog.list_products(data, search="dotted")] == ["Notebook"]
    assert catalog.list_products(data, search="(") == []


def test_price_range_and_sort(data, products):
    cheap = catalog.list_products(data, price_range="under-25", sort="price-low")

    assert [p.price for p in cheap] == [5.0, 10.0, 12.5]
    assert [p.name for p in catalog.list_products(data, price_range="50-100")] == ["Sold Out Vase"]


def test_unknown_filters_are_rejected(data):
    with pytest.raises(ValidationError):
        catalog.list_products(data, price_range="cheap")
    with pytest.raises(ValidationError):
        catalog.list_products(data, sort="random")


def test_category_filter(data, products, categories):
    data.update("products", {"category_id": categories[1]["id"]}, {"id": products["notebook"]["id"]})

    assert [p.name for p in catalog.list_products(data, category_id=categories[1]["id"])] == ["Notebook"]
    assert len(catalog.list_products(data, category_id="all")) == 4


def test_get_product_not_found(data):
    with pytest.raises(NotFound):
        catalog.get_product(data, "5f0000000000000000000000")


def test_reviews_carry_reviewer(data, products, customer):
    data.insert("reviews", {
        "product_id": products["lamp"]["id"], "user_id": customer["id"], "rating": 5, "title": "Bright",
    })

    reviews = catalog.list_reviews(data, products["lamp"]["id"])

    assert len(reviews) == 1
    assert reviews[0].user.full_name == "Ana Buyer"


def test_home_page(data, products, categories):
    data.insert("homepage_content", {"section": "hero", "title": "Spring sale", "is_active": True})

    page = catalog.home_page(data)

    assert page.hero.title == "Spring sale"
    assert {p.name for p in page.featured} == {"Desk Lamp", "Scarce Mug"}
    assert [c.name for c in page.categories] == ["Home", "Office", "Kitchen", "Garden"]


def test_home_page_hides_inactive_hero(data):
    data.insert("homepage_content", {"section": "hero", "title": "Hidden", "is_active": False})

    assert catalog.home_page(data).hero is None
