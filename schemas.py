"""
Database Schemas

MongoDB collection schemas for the EcoFinds marketplace, as Pydantic models.
These schemas are used for data validation in the application.

Each Pydantic model represents a collection in the database.
Model name is converted to lowercase for the collection name:
- User -> "user" collection
- Session -> "session" collection
- Category -> "category" collection
- Product -> "product" collection
- Cart -> "cart" collection
- CartItem -> "cart_item" collection
- Order -> "order" collection
- Purchase -> "purchase" collection
"""

from pydantic import BaseModel, Field, EmailStr
from typing import Optional, List, Literal
from datetime import datetime

Condition = Literal['excellent', 'good', 'fair']
PurchaseStatus = Literal['completed', 'pending', 'cancelled']


class User(BaseModel):
    """
    Users collection schema
    Collection name: "user" (lowercase of class name)
    """
    email: EmailStr = Field(..., description="Email address, unique")
    password_hash: str = Field(..., description="Salted PBKDF2 password hash")
    username: str = Field(..., description="Public display name")
    full_name: str = Field(..., description="Full name")
    phone: Optional[str] = Field(None, description="Contact phone")
    address: Optional[str] = Field(None, description="Postal address")
    avatar_url: Optional[str] = Field(None, description="Avatar image URL")
    joined_at: datetime = Field(..., description="Registration time (UTC)")


class Session(BaseModel):
    token: str = Field(..., description="Opaque bearer token")
    user_id: str
    created_at: datetime


class Category(BaseModel):
    name: str = Field(..., description="Category name, unique")


class Product(BaseModel):
    """
    Products collection schema
    Collection name: "product" (lowercase of class name)
    """
    title: str = Field(..., description="Product title")
    description: str = Field("", description="Product description")
    price: float = Field(..., ge=0, description="Asking price")
    category: str = Field(..., description="Category name")
    image: Optional[str] = Field(None, description="Image URL")
    seller_id: str = Field(..., description="Owner user id")
    seller_name: str = Field(..., description="Owner username at listing time")
    condition: Condition = Field('good')
    created_at: datetime
    updated_at: datetime


class Cart(BaseModel):
    """One cart per buyer; its lines live in "cart_item" """
    user_id: str = Field(..., description="User ID owning this cart")
    created_at: datetime


class CartItem(BaseModel):
    cart_id: str = Field(..., description="Cart ID")
    product_id: str = Field(..., description="Product ID")
    quantity: int = Field(1, ge=1)


class Purchase(BaseModel):
    """
    One line of a completed checkout. Price and title are copied from the
    product at purchase time.
    """
    order_id: Optional[str] = None
    product_id: str
    buyer_id: str
    seller_id: str
    title: str
    price: float = Field(..., ge=0)
    quantity: int = Field(1, ge=1)
    purchase_date: datetime
    status: PurchaseStatus = 'completed'


class Order(BaseModel):
    user_id: str
    total: float = Field(..., ge=0)
    created_at: datetime


# Public/Request models (not collections)
class RegisterRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)
    username: str = Field(..., min_length=1)
    full_name: str = Field(..., min_length=1)


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class ProfileUpdate(BaseModel):
    username: Optional[str] = Field(None, min_length=1)
    full_name: Optional[str] = Field(None, min_length=1)
    phone: Optional[str] = None
    address: Optional[str] = None
    avatar_url: Optional[str] = None


class ProductCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: str = ""
    price: float = Field(..., ge=0)
    category: str
    image: Optional[str] = None
    condition: Condition = 'good'


class ProductUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    price: Optional[float] = Field(None, ge=0)
    category: Optional[str] = None
    image: Optional[str] = None
    condition: Optional[Condition] = None


class AddToCartRequest(BaseModel):
    product_id: str


class UserOut(BaseModel):
    id: str
    email: EmailStr
    username: str
    full_name: str
    phone: Optional[str] = None
    address: Optional[str] = None
    avatar_url: Optional[str] = None
    joined_at: datetime


class AuthOut(BaseModel):
    token: str
    user: UserOut


class ProductOut(BaseModel):
    id: str
    title: str
    description: str = ""
    price: float
    category: str
    image: Optional[str] = None
    seller_id: str
    seller_name: str
    condition: Condition
    created_at: datetime
    updated_at: datetime


class CartLineOut(BaseModel):
    product: ProductOut
    quantity: int
    subtotal: float


class CartOut(BaseModel):
    items: List[CartLineOut]
    total: float


class PurchaseOut(BaseModel):
    id: str
    order_id: Optional[str] = None
    product_id: str
    buyer_id: str
    seller_id: str
    title: str
    price: float
    quantity: int
    purchase_date: datetime
    status: PurchaseStatus
    # None once the product has been deleted
    product: Optional[ProductOut] = None


class OrderOut(BaseModel):
    id: str
    user_id: str
    total: float
    created_at: datetime
    items: List[PurchaseOut] = []
