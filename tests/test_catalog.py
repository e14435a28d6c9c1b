from datetime import datetime, timedelta

import pytest
from pydantic import ValidationError

import catalog
from errors import BannerLimitError
from schemas import Banner, Product
from tests.conftest import PNG_BYTES


def make_product(name="Basmati Rice", price=19.99, tags=("Rice", "Indian"), hot=False, image_url="https://example.com/rice.jpg"):
    return Product(
        name=name,
        description=f"{name} from the corner store",
        price=price,
        image_url=image_url,
        tags=list(tags),
        is_hot_product=hot,
    )


def make_banner(title="Weekend Sale", image_url="https://example.com/sale.jpg"):
    return Banner(title=title, description="Everything fresh", image_url=image_url, link="/products/vegetables")


@pytest.fixture
def stocked(mongo_db):
    catalog.create_product(mongo_db, make_product("Basmati Rice", 19.99, ("Rice", "Indian"), hot=True))
    catalog.create_product(mongo_db, make_product("Red Lentils", 5.99, ("Lentils", "Bangladeshi")))
    catalog.create_product(mongo_db, make_product("Mango Pickle", 4.99, ("Pickle", "Indian"), hot=True))
    return mongo_db


class TestProducts:
    def test_create_and_get(self, mongo_db):
        created = catalog.create_product(mongo_db, make_product(tags=("Rice", "Rice", "Indian")))

        assert created["name"] == "Basmati Rice"
        assert created["tags"] == ["Rice", "Indian"]
        assert created["created_at"] == created["updated_at"]
        assert catalog.get_product(mongo_db, created["id"]) == created

    def test_non_finite_price_is_rejected(self):
        with pytest.raises(ValidationError):
            make_product(price=float("inf"))
        with pytest.raises(ValidationError):
            make_product(price=float("nan"))

    def test_invalid_id_is_not_found(self, mongo_db):
        assert catalog.get_product(mongo_db, "not-an-id") is None
        assert catalog.update_product(mongo_db, "not-an-id", {"price": 1}) is None

    def test_update(self, mongo_db):
        created = catalog.create_product(mongo_db, make_product())

        updated = catalog.update_product(mongo_db, created["id"], {"price": 17.5})

        assert updated["price"] == 17.5
        assert updated["name"] == created["name"]
        assert updated["updated_at"] >= created["updated_at"]

    def test_filter_by_tag(self, stocked):
        names = {p["name"] for p in catalog.list_products(stocked, tag="Indian")}

        assert names == {"Basmati Rice", "Mango Pickle"}

    def test_filter_hot(self, stocked):
        assert catalog.count_products(stocked, hot=True) == 2
        assert [p["name"] for p in catalog.list_products(stocked, hot=False)] == ["Red Lentils"]

    def test_search_is_case_insensitive(self, stocked):
        assert [p["name"] for p in catalog.list_products(stocked, search="lentil")] == ["Red Lentils"]

    def test_search_escapes_regex(self, stocked):
        assert catalog.list_products(stocked, search="(") == []

    def test_sort_by_price(self, stocked):
        prices = [p["price"] for p in catalog.list_products(stocked, sort_by="price", sort_order="asc")]

        assert prices == [4.99, 5.99, 19.99]

    def test_limit_and_skip(self, stocked):
        page = catalog.list_products(stocked, sort_by="price", sort_order="desc", limit=1, skip=1)

        assert [p["name"] for p in page] == ["Red Lentils"]

    def test_unknown_sort_field(self, stocked):
        with pytest.raises(ValueError):
            catalog.list_products(stocked, sort_by="name")

    def test_tags(self, stocked):
        assert catalog.list_tags(stocked) == ["Bangladeshi", "Indian", "Lentils", "Pickle", "Rice"]

    def test_delete_removes_image(self, mongo_db, storage):
        upload = storage.upload("products", "rice.png", PNG_BYTES, "image/png")
        created = catalog.create_product(mongo_db, make_product(image_url=upload.url))

        assert catalog.delete_product(mongo_db, storage, created["id"]) is True

        assert catalog.get_product(mongo_db, created["id"]) is None
        assert not storage.exists(upload.url)

    def test_delete_with_foreign_image(self, mongo_db, storage):
        created = catalog.create_product(mongo_db, make_product())

        assert catalog.delete_product(mongo_db, storage, created["id"]) is True
        assert catalog.delete_product(mongo_db, storage, created["id"]) is False


class TestBanners:
    def test_limit_of_five(self, mongo_db):
        for i in range(5):
            catalog.create_banner(mongo_db, make_banner(f"Banner {i}"))

        with pytest.raises(BannerLimitError):
            catalog.create_banner(mongo_db, make_banner("One too many"))
        assert catalog.count_banners(mongo_db) == 5

    def test_newest_first(self, mongo_db):
        start = datetime(2026, 1, 1)
        mongo_db.banner.insert_many([
            {"title": f"Banner {i}", "description": "", "image_url": "", "link": "/", "created_at": start + timedelta(days=i)}
            for i in range(3)
        ])

        titles = [b["title"] for b in catalog.list_banners(mongo_db)]

        assert titles == ["Banner 2", "Banner 1", "Banner 0"]

    def test_update_and_delete(self, mongo_db, storage):
        upload = storage.upload("banners", "sale.png", PNG_BYTES, "image/png")
        created = catalog.create_banner(mongo_db, make_banner(image_url=upload.url))

        updated = catalog.update_banner(mongo_db, created["id"], {"title": "Eid Sale"})
        assert updated["title"] == "Eid Sale"

        assert catalog.delete_banner(mongo_db, storage, created["id"]) is True
        assert catalog.get_banner(mongo_db, created["id"]) is None
        assert not storage.exists(upload.url)


def test_stats(stocked):
    catalog.create_banner(stocked, make_banner())

    assert catalog.stats(stocked) == {
        "total_products": 3,
        "total_banners": 1,
        "hot_products": 2,
        "max_banners": 5,
    }
