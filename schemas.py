"""
API Schemas for the Skincare Shop

Each Pydantic model is a request or response shape at the HTTP boundary.
They are distinct from the ORM models in ``models.py``; services map ORM rows
to these before anything leaves the service layer.

JSON keys are camelCase (``imageURL``, ``createdAt``...); Python attributes
stay snake_case and both spellings are accepted on input.
"""
from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field


class APIModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, from_attributes=True)


# ----------------------------------------------------------------------------
# Users & Auth
# ----------------------------------------------------------------------------

class UserRequest(APIModel):
    email: EmailStr = Field(..., description="User email")
    password: str = Field("", description="Password (min 6 characters)")


class LoginRequest(APIModel):
    email: EmailStr = Field(..., description="User email")
    password: str = Field("", description="Password")


class UserResponse(APIModel):
    id: str
    email: str
    role: Literal["USER", "ADMIN"]
    created_at: datetime = Field(..., alias="createdAt")
    updated_at: datetime = Field(..., alias="updatedAt")


class LoginResponse(APIModel):
    token: str = Field(..., description="JWT bearer token")
    user: UserResponse


class TokenClaims(APIModel):
    user_id: str = Field(..., alias="userID")
    email: str
    role: str


# ----------------------------------------------------------------------------
# Categories
# ----------------------------------------------------------------------------

class CategoryRequest(APIModel):
    name: str = Field("", description="Category name")


class CategoryResponse(APIModel):
    id: str
    name: str
    created_at: datetime = Field(..., alias="createdAt")
    updated_at: datetime = Field(..., alias="updatedAt")


# ----------------------------------------------------------------------------
# Products
# ----------------------------------------------------------------------------

class ProductRequest(APIModel):
    name: str = Field("", description="Product name")
    description: str = ""
    price: float = Field(0, description="Price, must be > 0")
    stock: int = Field(0, description="Units in stock, must be >= 0")
    image_url: str = Field("", alias="imageURL")
    category_id: str = Field("", alias="categoryID", description="Empty for no category")


class PatchProductRequest(APIModel):
    """Every field is optional; only the ones sent are changed."""

    name: Optional[str] = None
    description: Optional[str] = None
    price: Optional[float] = None
    stock: Optional[int] = None
    image_url: Optional[str] = Field(None, alias="imageURL")
    category_id: Optional[str] = Field(None, alias="categoryID", description="Empty string removes the category")


class ProductResponse(APIModel):
    id: str
    name: str
    description: str = ""
    price: float
    stock: int
    image_url: str = Field("", alias="imageURL")
    category_id: Optional[str] = Field(None, alias="categoryID")
    category: Optional[CategoryResponse] = None
    created_at: datetime = Field(..., alias="createdAt")
    updated_at: datetime = Field(..., alias="updatedAt")


class PaginatedProductsResponse(APIModel):
    products: List[ProductResponse]
    total: int
    page: int
    limit: int
    total_pages: int = Field(..., alias="totalPages")
    has_next: bool = Field(..., alias="hasNext")
    has_prev: bool = Field(..., alias="hasPrev")


# ----------------------------------------------------------------------------
# Orders
# ----------------------------------------------------------------------------

class OrderItemRequest(APIModel):
    product_id: str = Field(..., alias="productID")
    quantity: int = Field(..., gt=0)


class CreateOrderRequest(APIModel):
    items: List[OrderItemRequest] = Field(default_factory=list)


class OrderItemResponse(APIModel):
    id: str
    quantity: int
    price: float = Field(..., description="Unit price at order time")
    product: ProductResponse


class OrderResponse(APIModel):
    id: str
    order_date: datetime = Field(..., alias="orderDate")
    total_amount: float = Field(..., alias="totalAmount")
    status: Literal["PENDING", "SHIPPED", "DELIVERED", "CANCELLED"]
    user_id: str = Field(..., alias="userID")
    order_items: List[OrderItemResponse] = Field(default_factory=list, alias="orderItems")
    created_at: datetime = Field(..., alias="createdAt")
    updated_at: datetime = Field(..., alias="updatedAt")


class UpdateOrderStatusRequest(APIModel):
    status: str = ""


# ----------------------------------------------------------------------------
# Reviews
# ----------------------------------------------------------------------------

class CreateReviewRequest(APIModel):
    rating: int = Field(..., ge=1, le=5)
    comment: Optional[str] = None


class UpdateReviewRequest(APIModel):
    rating: Optional[int] = Field(None, ge=1, le=5)
    comment: Optional[str] = None


class ReviewResponse(APIModel):
    id: str
    rating: int
    comment: Optional[str] = None
    user_id: str = Field(..., alias="userID")
    user_email: str = Field(..., alias="userEmail", description="Masked author email")
    product_id: str = Field(..., alias="productID")
    created_at: datetime = Field(..., alias="createdAt")
    updated_at: datetime = Field(..., alias="updatedAt")


class ProductReviewsResponse(APIModel):
    reviews: List[ReviewResponse]
    average_rating: float = Field(..., alias="averageRating")
    total_reviews: int = Field(..., alias="totalReviews")


class MessageResponse(APIModel):
    message: str
