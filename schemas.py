"""
Database Schemas

MongoDB collection schemas and request bodies as Pydantic models.
Collection name is the lowercase model name:
- Menu -> "menu" collection
- Category -> "category" collection
- Coupon -> "coupon" collection

Field aliases are camelCase; that is the shape used both on the wire and in
stored documents.
"""
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, model_validator

# ---------- Catalog ----------

SpicyLevel = Literal["Not Applicable", "Mild", "Medium", "Hot", "Extra Hot"]


class CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class MenuSize(CamelModel):
    name: str
    price: Optional[float] = Field(None, ge=0, description="Price for this size; falls back to the item price")
    is_default: bool = Field(False, alias="isDefault")


class MenuAddon(CamelModel):
    name: str
    price: float = Field(..., ge=0)


class MenuImage(CamelModel):
    url: str
    public_id: Optional[str] = None


class Category(CamelModel):
    name: str = Field(..., description="Display name")
    slug: str = Field(..., description="URL-friendly id")
    description: Optional[str] = None
    is_active: bool = Field(True, alias="isActive")
    sort_order: int = Field(0, alias="sortOrder")


class Menu(CamelModel):
    name: str = Field(..., max_length=100)
    description: str = Field(..., max_length=1000)
    category: str = Field(..., description="Category slug")
    images: List[MenuImage] = Field(default_factory=list)
    mrp: float = Field(..., ge=0)
    discounted_price: float = Field(..., ge=0, alias="discountedPrice")
    quantity: int = Field(0, ge=0, description="Units in stock")
    sizes: List[MenuSize] = Field(default_factory=list)
    addons: List[MenuAddon] = Field(default_factory=list)
    is_vegetarian: bool = Field(True, alias="isVegetarian")
    spicy_level: SpicyLevel = Field("Not Applicable", alias="spicyLevel")
    preparation_time: int = Field(15, ge=1, alias="preparationTime")
    tags: List[str] = Field(default_factory=list)
    is_active: bool = Field(True, alias="isActive")
    is_available: bool = Field(True, alias="isAvailable")
    featured: bool = False
    sort_order: int = Field(0, alias="sortOrder")
    average_rating: float = Field(0, ge=0, le=5, alias="averageRating")
    total_sales: int = Field(0, ge=0, alias="totalSales")

    @model_validator(mode="after")
    def clamp_discounted_price(self):
        if self.discounted_price > self.mrp:
            self.discounted_price = self.mrp
        return self


class Coupon(CamelModel):
    code: str
    type: Literal["percentage", "fixed"]
    value: float = Field(..., gt=0)
    min_order: float = Field(0, ge=0, alias="minOrder")
    max_discount: Optional[float] = Field(None, ge=0, alias="maxDiscount")
    is_active: bool = Field(True, alias="isActive")

# ---------- Cart requests ----------


class AddonSelection(CamelModel):
    id: str
    quantity: int = 1


class AddCartItemRequest(CamelModel):
    menu_item_id: str = Field(..., alias="menuItemId", min_length=1)
    quantity: int = Field(1, ge=1)
    size: str = "Medium"
    addons: List[AddonSelection] = Field(default_factory=list)
    special_instructions: str = Field("", alias="specialInstructions", max_length=200)


class UpdateCartItemRequest(CamelModel):
    quantity: int


class ApplyCouponRequest(CamelModel):
    coupon_code: str = Field(..., alias="couponCode", min_length=1)

# ---------- Checkout ----------

OrderType = Literal["pickup", "delivery"]
Timing = Literal["asap", "scheduled"]
PaymentMethod = Literal["pay_online", "cash_on_delivery", "card_on_pickup"]


class CustomerInfo(CamelModel):
    name: str = Field(..., min_length=1)
    email: EmailStr
    phone: Optional[str] = None


class DeliveryAddress(CamelModel):
    street: str = Field(..., min_length=1)
    city: str = Field(..., min_length=1)
    state: str = Field(..., min_length=1)
    zip_code: str = Field(..., alias="zipCode", min_length=1)
    country: str = "United States"
    phone_number: Optional[str] = Field(None, alias="phoneNumber")


class CheckoutRequest(CamelModel):
    customer_info: CustomerInfo = Field(..., alias="customerInfo")
    order_type: OrderType = Field("delivery", alias="orderType")
    timing: Timing = "asap"
    scheduled_date: Optional[str] = Field(None, alias="scheduledDate", description="YYYY-MM-DD")
    scheduled_time: Optional[str] = Field(None, alias="scheduledTime", description="HH:MM")
    delivery_address: Optional[DeliveryAddress] = Field(None, alias="deliveryAddress")
    payment_method: PaymentMethod = Field("pay_online", alias="paymentMethod")
    special_instructions: str = Field("", alias="specialInstructions", max_length=500)

    @model_validator(mode="after")
    def check_order_details(self):
        if self.order_type == "delivery" and self.delivery_address is None:
            raise ValueError("Complete delivery address is required for delivery orders")
        if self.timing == "scheduled" and not (self.scheduled_date and self.scheduled_time):
            raise ValueError("Scheduled date and time are required for scheduled orders")
        return self


class GuestCheckoutRequest(CheckoutRequest):
    session_id: str = Field(..., alias="sessionId", min_length=1)
