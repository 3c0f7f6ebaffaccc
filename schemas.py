"""
Database Schemas for Valora Gold

Each Pydantic model corresponds to a MongoDB collection. Collection name is the
lowercase class name.
"""
from datetime import datetime
from typing import Optional, List, Literal, get_args

from pydantic import BaseModel, Field, EmailStr

ProductCategory = Literal[
    "Hair",
    "Perfume",
    "Beauty",
    "Other",
    "Bundles",
    "Face",
    "Body",
    "Baby Care",
    "Necklaces",
    "Earrings",
    "Rings",
    "Bracelets",
    "Chains",
]

OrderStatus = Literal["pending", "confirmed", "processing", "shipped", "delivered", "cancelled"]
PaymentStatus = Literal["pending", "paid", "failed"]
PaymentMethod = Literal["COD", "Bank Transfer"]
NotificationType = Literal["order", "inventory", "user", "system"]

PRODUCT_CATEGORIES = get_args(ProductCategory)
ORDER_STATUS_VALUES = get_args(OrderStatus)
PAYMENT_STATUS_VALUES = get_args(PaymentStatus)


class Address(BaseModel):
    street: str = Field(..., min_length=1)
    city: str = Field(..., min_length=1)
    province: str = Field(..., min_length=1)
    postal_code: str = Field(..., min_length=1)
    phone: str = Field(..., min_length=1)
    is_default: bool = False


class CartLine(BaseModel):
    product_id: str
    quantity: int = Field(1, ge=1)


class User(BaseModel):
    name: str = Field(..., min_length=1)
    email: EmailStr
    password_hash: str = Field(..., description="BCrypt hash of the password")
    phone: Optional[str] = None
    gender: Optional[Literal["male", "female"]] = None
    profile_image: str = ""
    country: Optional[str] = None
    country_code: Optional[str] = None
    phone_dial_code: Optional[str] = None
    role: Literal["user", "admin"] = "user"
    addresses: List[Address] = []
    cart: List[CartLine] = []
    wishlist: List[str] = []
    reset_code: Optional[str] = None
    reset_code_expires_at: Optional[datetime] = None
    is_email_verified: bool = False


class Product(BaseModel):
    name: str = Field(..., min_length=1)
    slug: str
    price: Optional[float] = Field(None, ge=0, description="None means coming soon")
    original_price: Optional[float] = Field(None, ge=0)
    image_url: str = ""
    images: List[str] = []
    category: ProductCategory
    sub_category: Optional[str] = None
    description: str
    ingredients: Optional[str] = None
    benefits: List[str] = []
    rating: float = Field(0, ge=0, le=5)
    num_reviews: int = 0
    in_stock: bool = True
    stock_count: int = Field(0, ge=0)
    is_featured: bool = False
    is_best_seller: bool = False
    coming_soon: bool = False
    tags: List[str] = []
    keywords: List[str] = []
    weight: Optional[str] = None
    dimensions: Optional[str] = None
    warranty: Optional[str] = None


class Review(BaseModel):
    product_id: str
    user_id: str
    customer_name: str = Field(..., min_length=1)
    rating: int = Field(..., ge=1, le=5)
    review_text: str = Field(..., min_length=1)
    product_title: Optional[str] = None
    product_image: Optional[str] = None
    is_verified: bool = False
    helpful: int = 0


class OrderItem(BaseModel):
    product_id: str
    name: str
    price: float = Field(..., ge=0)
    quantity: int = Field(..., ge=1)
    image: Optional[str] = None


class ShippingAddress(BaseModel):
    street: str = Field(..., min_length=1)
    city: str = Field(..., min_length=1)
    province: str = Field(..., min_length=1)
    postal_code: str = Field(..., min_length=1)
    phone: str = Field(..., min_length=1)


class Order(BaseModel):
    order_number: str
    user_id: str
    items: List[OrderItem]
    shipping_address: ShippingAddress
    payment_method: PaymentMethod = "COD"
    payment_status: PaymentStatus = "pending"
    order_status: OrderStatus = "pending"
    tracking_number: str = ""
    notes: Optional[str] = None
    subtotal: float = Field(..., ge=0)
    shipping_cost: float = Field(0, ge=0)
    discount: float = Field(0, ge=0)
    total: float = Field(..., ge=0)


class Notification(BaseModel):
    title: str = Field(..., min_length=1)
    message: str = Field(..., min_length=1)
    type: NotificationType = "system"
    metadata: dict = {}
    read: bool = False


class Setting(BaseModel):
    key: str
    value: dict = {}
    updated_by: Optional[str] = None


class Contact(BaseModel):
    name: str = Field(..., min_length=1)
    email: EmailStr
    phone: Optional[str] = None
    subject: Optional[str] = None
    message: str = Field(..., min_length=1)


class Newsletter(BaseModel):
    email: EmailStr
    is_active: bool = True
    subscribed_at: Optional[datetime] = None
