from datetime import datetime

from catalog import ProductRepository
from results import Status
from schemas import ProductCreate, ProductUpdate

ALICE = {"id": "u-alice", "username": "alice"}
BOB = {"id": "u-bob", "username": "bob"}


def create(store, seller=ALICE, **kwargs):
    data = {"title": "Desk", "price": 1500, "category": "Furniture"}
    data.update(kwargs)
    return ProductRepository(store).create(seller, ProductCreate(**data)).value


def test_create_assigns_id_and_timestamps(store):
    product = create(store, description="Solid oak", condition="excellent")
    assert product["id"]
    assert isinstance(product["created_at"], datetime)
    assert product["created_at"] == product["updated_at"]
    assert product["seller_id"] == "u-alice"
    assert product["seller_name"] == "alice"
    assert product["condition"] == "excellent"


def test_update_refreshes_updated_at_only(store):
    product = create(store)
    repo = ProductRepository(store)
    result = repo.update(ALICE, product["id"], ProductUpdate(price=1200))
    assert result.ok
    assert result.value["price"] == 1200
    assert result.value["created_at"] == product["created_at"]
    assert result.value["updated_at"] >= product["updated_at"]
    assert result.value["title"] == "Desk"


def test_update_missing_and_foreign(store):
    repo = ProductRepository(store)
    assert repo.update(ALICE, "missing", ProductUpdate(price=1)).status is Status.NOT_FOUND
    product = create(store)
    assert repo.update(BOB, product["id"], ProductUpdate(price=1)).status is Status.FORBIDDEN
    assert repo.get(product["id"]).value["price"] == 1500


def test_delete(store):
    repo = ProductRepository(store)
    product = create(store)
    assert repo.delete(BOB, product["id"]).status is Status.FORBIDDEN
    assert repo.delete(ALICE, product["id"]).ok
    assert repo.get(product["id"]).status is Status.NOT_FOUND
    assert repo.delete(ALICE, product["id"]).status is Status.NOT_FOUND


def test_search_by_title_and_description(store):
    create(store, title="Oak Desk")
    create(store, title="Lamp", description="Goes on a desk", category="Home & Kitchen")
    create(store, title="Novel", category="Books")
    repo = ProductRepository(store)
    assert {p["title"] for p in repo.list(q="DESK")} == {"Oak Desk", "Lamp"}
    assert [p["title"] for p in repo.list(q="desk", category="Furniture")] == ["Oak Desk"]


def test_category_all_means_everything(store):
    create(store)
    create(store, title="Novel", category="Books")
    repo = ProductRepository(store)
    assert len(repo.list(category="All")) == 2
    assert [p["title"] for p in repo.list(category="Books")] == ["Novel"]


def test_list_by_seller(store):
    create(store)
    create(store, seller=BOB, title="Bike")
    assert [p["title"] for p in ProductRepository(store).list(seller_id="u-bob")] == ["Bike"]


def test_categories_seeded(store):
    assert ProductRepository(store).categories() == [
        "Furniture", "Electronics", "Clothing", "Books", "Home & Kitchen"
    ]
    assert store.seed_categories(["Other"]) == 0


def test_update_can_clear_image_but_not_title(store):
    product = create(store, image="https://img.example.com/desk.jpg")
    changes = ProductUpdate.model_validate({"image": None, "title": None, "price": 1400})
    updated = ProductRepository(store).update(ALICE, product["id"], changes).value
    assert updated["image"] is None
    assert updated["title"] == "Desk"
    assert updated["price"] == 1400
