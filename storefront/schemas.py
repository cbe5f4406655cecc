from pydantic import BaseModel, EmailStr, Field, computed_field, field_validator
from typing import Optional, List, Dict, Literal
from datetime import date, datetime
from decimal import Decimal
from storefront.db.models import OrderStatus, PaymentMethod, DiscountType, ReturnStatus
from storefront.services.pricing import discounted_price

# --- auth ---

class RegisterPayload(BaseModel):
    email: EmailStr
    password: str = Field(min_length=8)
    first_name: str = Field(default="", max_length=50)
    last_name: str = Field(default="", max_length=50)

class LoginPayload(BaseModel):
    email: EmailStr
    password: str

class UserRead(BaseModel):
    id: int
    email: EmailStr
    first_name: str
    last_name: str
    role: str
    class Config: from_attributes = True

class TokenPair(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"

class RefreshRequest(BaseModel):
    refresh_token: str

class ProfileRead(UserRead):
    phone_number: Optional[str] = None
    national_code: Optional[str] = None
    birth_date: Optional[date] = None
    gender: Optional[str] = None
    created_at: datetime

class ProfileUpdate(BaseModel):
    first_name: Optional[str] = Field(default=None, max_length=50)
    last_name: Optional[str] = Field(default=None, max_length=50)
    phone_number: Optional[str] = Field(default=None, pattern=r"^\+?\d{7,15}$")
    national_code: Optional[str] = Field(default=None, pattern=r"^\d{10}$")
    birth_date: Optional[date] = None
    gender: Optional[Literal["male", "female"]] = None

class PasswordChange(BaseModel):
    current_password: str
    new_password: str = Field(min_length=8)

class AddressIn(BaseModel):
    title: str = Field(default="Home", min_length=1, max_length=100)
    province: str = Field(min_length=1, max_length=100)
    city: str = Field(min_length=1, max_length=100)
    postal_code: str = Field(pattern=r"^\d{5,10}$")
    address: str = Field(min_length=10, max_length=500)
    recipient_name: str = Field(min_length=1, max_length=100)
    recipient_phone: str = Field(pattern=r"^\+?\d{7,15}$")
    is_default: bool = False

class AddressUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=100)
    province: Optional[str] = Field(default=None, min_length=1, max_length=100)
    city: Optional[str] = Field(default=None, min_length=1, max_length=100)
    postal_code: Optional[str] = Field(default=None, pattern=r"^\d{5,10}$")
    address: Optional[str] = Field(default=None, min_length=10, max_length=500)
    recipient_name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    recipient_phone: Optional[str] = Field(default=None, pattern=r"^\+?\d{7,15}$")
    is_default: Optional[bool] = None

class AddressRead(AddressIn):
    id: int
    class Config: from_attributes = True

# --- catalog ---

class CategoryBase(BaseModel):
    name: str = Field(min_length=1, max_length=120)
    description: str = ""
    image_url: str = ""
class CategoryCreate(CategoryBase): pass
class CategoryRead(CategoryBase):
    id: int
    class Config: from_attributes = True

class ProductSizeIn(BaseModel):
    size: str = Field(min_length=1, max_length=20)
    stock: int = Field(default=0, ge=0)
class ProductSizeRead(ProductSizeIn):
    id: int
    class Config: from_attributes = True

class ProductColorIn(BaseModel):
    color: str = Field(min_length=1, max_length=50)
    hex_code: str = ""
class ProductColorRead(ProductColorIn):
    id: int
    class Config: from_attributes = True

class ProductImageRead(BaseModel):
    id: int
    url: str
    object_key: str
    class Config: from_attributes = True

class ProductBase(BaseModel):
    name: str = Field(min_length=1, max_length=240)
    description: Optional[str] = ""
    price: Decimal = Field(ge=0, max_digits=12, decimal_places=2)
    discount_percent: int = Field(default=0, ge=0, le=100)
    stock: int = Field(default=0, ge=0)
    brand: Optional[str] = ""
    image_url: Optional[str] = ""
    category_id: Optional[int] = None
    is_active: bool = True

class ProductCreate(ProductBase):
    sizes: List[ProductSizeIn] = []
    colors: List[ProductColorIn] = []

class ProductUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    price: Optional[Decimal] = Field(default=None, ge=0, max_digits=12, decimal_places=2)
    discount_percent: Optional[int] = Field(default=None, ge=0, le=100)
    stock: Optional[int] = Field(default=None, ge=0)
    brand: Optional[str] = None
    image_url: Optional[str] = None
    category_id: Optional[int] = None
    is_active: Optional[bool] = None
    sizes: Optional[List[ProductSizeIn]] = None
    colors: Optional[List[ProductColorIn]] = None

class ProductSummary(BaseModel):
    id: int
    name: str
    price: Decimal
    discount_percent: int
    image_url: Optional[str] = ""
    sizes: List[ProductSizeRead] = []
    colors: List[ProductColorRead] = []
    class Config: from_attributes = True

    @computed_field
    @property
    def final_price(self) -> Decimal:
        return discounted_price(self.price, self.discount_percent)

    @computed_field
    @property
    def has_discount(self) -> bool:
        return self.discount_percent > 0

class ProductRead(ProductSummary):
    description: Optional[str] = ""
    stock: int
    sales_count: int
    brand: Optional[str] = ""
    category_id: Optional[int] = None
    is_active: bool
    images: List[ProductImageRead] = []

# --- cart ---

class CartItemAdd(BaseModel):
    product_id: int
    quantity: int = Field(ge=1, le=100)
    size: Optional[str] = None
    color: Optional[str] = None

class CartItemUpdate(BaseModel):
    quantity: int = Field(ge=0, le=100)

class CartItemRead(BaseModel):
    id: int
    product_id: int
    quantity: int
    size: Optional[str] = None
    color: Optional[str] = None
    product: ProductSummary
    class Config: from_attributes = True

class CartRead(BaseModel):
    id: int
    items: List[CartItemRead] = []
    class Config: from_attributes = True

    @computed_field
    @property
    def subtotal(self) -> Decimal:
        return sum((it.product.final_price * it.quantity for it in self.items), Decimal("0.00"))

class Pagination(BaseModel):
    total: int
    page: int
    limit: int
    total_pages: int

# --- wishlist ---

class WishlistAdd(BaseModel):
    product_id: int

class WishlistItemRead(BaseModel):
    id: int
    product_id: int
    created_at: datetime
    product: ProductSummary
    class Config: from_attributes = True

class WishlistList(BaseModel):
    items: List[WishlistItemRead]
    pagination: Pagination

# --- orders ---

class OrderLineIn(BaseModel):
    product_id: int
    quantity: int = Field(ge=1, le=100)
    size: Optional[str] = None
    color: Optional[str] = None

class OrderCreate(BaseModel):
    items: List[OrderLineIn] = Field(min_length=1, max_length=50)
    address: str = Field(min_length=10, max_length=500)
    payment_method: PaymentMethod = PaymentMethod.ONLINE

    @field_validator("address")
    @classmethod
    def _address_not_blank(cls, v: str) -> str:
        v = v.strip()
        if len(v) < 10:
            raise ValueError("address must be at least 10 characters")
        return v

class OrderItemRead(BaseModel):
    id: int
    product_id: int
    quantity: int
    price: Decimal
    size: Optional[str] = None
    color: Optional[str] = None
    product: ProductSummary
    class Config: from_attributes = True

class OrderRead(BaseModel):
    id: int
    order_code: str
    user_id: int
    total: Decimal
    address: str
    status: OrderStatus
    payment_method: PaymentMethod
    tracking_number: Optional[str] = None
    shipping_method: Optional[str] = None
    estimated_delivery: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime
    items: List[OrderItemRead] = []
    class Config: from_attributes = True

class OrderList(BaseModel):
    orders: List[OrderRead]
    stats: Dict[str, int]
    pagination: Pagination

class OrderStatusUpdate(BaseModel):
    status: OrderStatus

class TrackingUpdate(BaseModel):
    tracking_number: Optional[str] = Field(default=None, max_length=64)
    shipping_method: Optional[str] = Field(default=None, max_length=64)
    estimated_delivery: Optional[datetime] = None

# --- payments ---

class OrderRef(BaseModel):
    order_id: int

class IntentResponse(BaseModel):
    client_secret: str
    amount: Decimal
    currency: str
    status: str = "requires_payment_method"

# --- coupons ---

class CouponBase(BaseModel):
    code: str = Field(min_length=1, max_length=50)
    discount_type: DiscountType
    value: Decimal = Field(gt=0, max_digits=12, decimal_places=2)
    min_order: Optional[Decimal] = Field(default=None, ge=0)
    max_discount: Optional[Decimal] = Field(default=None, ge=0)
    usage_limit: Optional[int] = Field(default=None, gt=0)
    expires_at: Optional[datetime] = None
    is_active: bool = True
class CouponCreate(CouponBase): pass
class CouponUpdate(BaseModel):
    code: Optional[str] = Field(default=None, min_length=1, max_length=50)
    discount_type: Optional[DiscountType] = None
    value: Optional[Decimal] = Field(default=None, gt=0, max_digits=12, decimal_places=2)
    min_order: Optional[Decimal] = Field(default=None, ge=0)
    max_discount: Optional[Decimal] = Field(default=None, ge=0)
    usage_limit: Optional[int] = Field(default=None, gt=0)
    expires_at: Optional[datetime] = None
    is_active: Optional[bool] = None
class CouponRead(CouponBase):
    id: int
    used_count: int
    class Config: from_attributes = True

class CouponList(BaseModel):
    coupons: List[CouponRead]
    pagination: Pagination

class UserCouponRead(BaseModel):
    id: int
    used: bool
    coupon: CouponRead
    class Config: from_attributes = True

class CouponValidate(BaseModel):
    code: str = Field(min_length=1, max_length=50)
    cart_total: Decimal = Field(ge=0)

class CouponValidation(BaseModel):
    coupon: CouponRead
    discount_amount: Decimal
    final_amount: Decimal
    original_amount: Decimal

# --- reviews ---

class ReviewCreate(BaseModel):
    product_id: int
    rating: int = Field(ge=1, le=5)
    text: Optional[str] = Field(default="", max_length=500)

class ReviewUpdate(BaseModel):
    rating: Optional[int] = Field(default=None, ge=1, le=5)
    text: Optional[str] = Field(default=None, max_length=500)

class ReviewRead(BaseModel):
    id: int
    product_id: int
    user_id: int
    rating: int
    text: Optional[str] = ""
    is_approved: bool
    helpful_count: int
    created_at: datetime
    class Config: from_attributes = True

class ReviewList(BaseModel):
    reviews: List[ReviewRead]
    average_rating: Optional[float] = None
    pagination: Pagination

# --- returns ---

class ReturnItemIn(BaseModel):
    order_item_id: int
    quantity: int = Field(ge=1)
    return_reason: str = Field(min_length=5, max_length=200)

class ReturnCreate(BaseModel):
    order_id: int
    reason: str = Field(min_length=10, max_length=500)
    items: List[ReturnItemIn] = Field(min_length=1)

class ReturnItemRead(BaseModel):
    id: int
    order_item_id: int
    quantity: int
    return_reason: str
    class Config: from_attributes = True

class ReturnRead(BaseModel):
    id: int
    order_id: int
    user_id: int
    reason: str
    status: ReturnStatus
    admin_notes: Optional[str] = None
    refund_amount: Optional[Decimal] = None
    created_at: datetime
    updated_at: datetime
    items: List[ReturnItemRead] = []
    class Config: from_attributes = True

class ReturnList(BaseModel):
    returns: List[ReturnRead]
    pagination: Pagination

class ReturnStatusUpdate(BaseModel):
    status: Literal["APPROVED", "REJECTED", "COMPLETED", "REFUNDED"]
    admin_notes: Optional[str] = Field(default=None, max_length=1000)
    refund_amount: Optional[Decimal] = Field(default=None, ge=0)
