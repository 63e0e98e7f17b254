import logging
from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import FastAPI, HTTPException, Depends, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from bson import ObjectId

import config
import database
from accounts import UserProfileStore
from cart import CartManager
from catalog import ProductRepository
from orders import PurchaseRecorder
from results import Result, Status
from schemas import (
    RegisterRequest, LoginRequest, ProfileUpdate, ProductCreate, ProductUpdate,
    AddToCartRequest, UserOut, AuthOut, ProductOut, CartOut, PurchaseOut, OrderOut,
)
from storage import Store, MemoryStore, MongoStore

config.configure_logging()
logger = logging.getLogger(__name__)


def build_store() -> Store:
    if database.db is not None:
        database.ensure_indexes()
        return MongoStore(database.db, database.client)
    logger.warning("DATABASE_URL/DATABASE_NAME not set, using in-memory store")
    return MemoryStore()


@asynccontextmanager
async def lifespan(app: FastAPI):
    store = build_store()
    seeded = store.seed_categories(config.DEFAULT_CATEGORIES)
    if seeded:
        logger.info("Seeded %d categories", seeded)
    app.state.store = store
    logger.info("EcoFinds API ready on %s backend", store.kind)
    yield


app = FastAPI(title="EcoFinds API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CLIENT_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

security = HTTPBearer(auto_error=False)

HTTP_CODES = {
    Status.NOT_FOUND: 404,
    Status.CONFLICT: 400,
    Status.FORBIDDEN: 403,
    Status.UNAUTHORIZED: 401,
    Status.INVALID: 400,
}


# Utils

def unwrap(result: Result):
    if result.ok:
        return result.value
    raise HTTPException(status_code=HTTP_CODES[result.status], detail=result.detail)


def check_object_id(value: str, what: str) -> str:
    if not ObjectId.is_valid(value):
        raise HTTPException(status_code=400, detail=f"Invalid {what} id")
    return value


def get_store(request: Request) -> Store:
    return request.app.state.store


def get_token(credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)) -> Optional[str]:
    return credentials.credentials if credentials else None


def current_user(token: Optional[str] = Depends(get_token), store: Store = Depends(get_store)) -> dict:
    result = UserProfileStore(store).current_user(token)
    if not result.ok:
        raise HTTPException(status_code=401, detail=result.detail, headers={"WWW-Authenticate": "Bearer"})
    return result.value


@app.get("/")
def read_root():
    return {"status": "EcoFinds API running"}


# Auth endpoints
@app.post("/api/auth/register", response_model=AuthOut)
def register(payload: RegisterRequest, store: Store = Depends(get_store)):
    token, user = unwrap(UserProfileStore(store).register(payload))
    return {"token": token, "user": user}


@app.post("/api/auth/login", response_model=AuthOut)
def login(payload: LoginRequest, store: Store = Depends(get_store)):
    result = UserProfileStore(store).login(payload.email, payload.password)
    if result.status in (Status.NOT_FOUND, Status.UNAUTHORIZED):
        raise HTTPException(status_code=401, detail="Invalid credentials")
    token, user = unwrap(result)
    return {"token": token, "user": user}


@app.post("/api/auth/logout")
def logout(token: Optional[str] = Depends(get_token), store: Store = Depends(get_store)):
    if not token:
        raise HTTPException(status_code=401, detail="Not authenticated")
    unwrap(UserProfileStore(store).logout(token))
    return {"status": "logged_out"}


# Products
@app.get("/api/products", response_model=List[ProductOut])
def list_products(q: Optional[str] = None, category: Optional[str] = None, seller_id: Optional[str] = None,
                  store: Store = Depends(get_store)):
    return ProductRepository(store).list(q=q, category=category, seller_id=seller_id)


@app.get("/api/products/categories", response_model=List[str])
def list_categories(store: Store = Depends(get_store)):
    return ProductRepository(store).categories()


@app.get("/api/products/{product_id}", response_model=ProductOut)
def get_product(product_id: str, store: Store = Depends(get_store)):
    check_object_id(product_id, "product")
    return unwrap(ProductRepository(store).get(product_id))


@app.post("/api/products", response_model=ProductOut, status_code=201)
def create_product(payload: ProductCreate, user: dict = Depends(current_user), store: Store = Depends(get_store)):
    return unwrap(ProductRepository(store).create(user, payload))


@app.put("/api/products/{product_id}", response_model=ProductOut)
def update_product(product_id: str, payload: ProductUpdate, user: dict = Depends(current_user),
                   store: Store = Depends(get_store)):
    check_object_id(product_id, "product")
    return unwrap(ProductRepository(store).update(user, product_id, payload))


@app.delete("/api/products/{product_id}")
def delete_product(product_id: str, user: dict = Depends(current_user), store: Store = Depends(get_store)):
    check_object_id(product_id, "product")
    unwrap(ProductRepository(store).delete(user, product_id))
    return {"status": "deleted"}


# Cart
@app.get("/api/cart", response_model=CartOut)
def get_cart(user: dict = Depends(current_user), store: Store = Depends(get_store)):
    return CartManager(store, user["id"]).summary()


@app.post("/api/cart/add")
def add_to_cart(item: AddToCartRequest, user: dict = Depends(current_user), store: Store = Depends(get_store)):
    check_object_id(item.product_id, "product")
    return unwrap(CartManager(store, user["id"]).add(item.product_id))


@app.delete("/api/cart/{product_id}")
def remove_from_cart(product_id: str, user: dict = Depends(current_user), store: Store = Depends(get_store)):
    result = CartManager(store, user["id"]).remove(product_id)
    if result.status is Status.NOT_FOUND:
        return {"status": "not_in_cart"}
    unwrap(result)
    return {"status": "removed"}


@app.delete("/api/cart")
def clear_cart(user: dict = Depends(current_user), store: Store = Depends(get_store)):
    deleted = unwrap(CartManager(store, user["id"]).clear())
    return {"deleted": deleted}


# Orders
@app.post("/api/orders/checkout", response_model=OrderOut, status_code=201)
def checkout(user: dict = Depends(current_user), store: Store = Depends(get_store)):
    return unwrap(PurchaseRecorder(store).checkout(user))


@app.get("/api/orders", response_model=List[OrderOut])
def list_orders(user: dict = Depends(current_user), store: Store = Depends(get_store)):
    return PurchaseRecorder(store).orders(user)


@app.get("/api/orders/purchases", response_model=List[PurchaseOut])
def purchase_history(user: dict = Depends(current_user), store: Store = Depends(get_store)):
    return PurchaseRecorder(store).history(user)


@app.get("/api/orders/{order_id}", response_model=OrderOut)
def get_order(order_id: str, user: dict = Depends(current_user), store: Store = Depends(get_store)):
    check_object_id(order_id, "order")
    return unwrap(PurchaseRecorder(store).order(user, order_id))


# User profile
@app.get("/api/user/me", response_model=UserOut)
def read_profile(user: dict = Depends(current_user)):
    return user


@app.put("/api/user/me", response_model=UserOut)
def update_profile(payload: ProfileUpdate, user: dict = Depends(current_user), store: Store = Depends(get_store)):
    return unwrap(UserProfileStore(store).update_profile(user["id"], payload))


@app.get("/test")
def test_database(store: Store = Depends(get_store)):
    """Test endpoint to check which storage backend is in use and that it answers"""
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "storage": store.kind,
        "collections": []
    }
    try:
        info = store.describe()
        response["collections"] = info["collections"]
        if store.kind == "mongodb":
            response["database"] = "✅ Connected & Working"
        else:
            response["database"] = "⚠️  In-memory store, data is not persisted"
    except Exception as e:
        response["database"] = f"❌ Error: {str(e)[:50]}"

    response["database_url"] = "✅ Set" if config.DATABASE_URL else "❌ Not Set"
    response["database_name"] = "✅ Set" if config.DATABASE_NAME else "❌ Not Set"
    return response


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=config.PORT)
