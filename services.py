import logging
import math
from collections import OrderedDict
from contextlib import contextmanager
from typing import Dict, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from config import Settings
from errors import conflict, forbidden, not_found, unauthorized, validation
from models import Category, Order, OrderItem, OrderStatus, Product, Review, Role, User
from repositories import (
    CategoryRepository,
    OrderRepository,
    ProductRepository,
    ReviewRepository,
    UserRepository,
)
from schemas import (
    CategoryResponse,
    LoginResponse,
    OrderItemRequest,
    OrderItemResponse,
    OrderResponse,
    PaginatedProductsResponse,
    PatchProductRequest,
    ProductRequest,
    ProductResponse,
    ProductReviewsResponse,
    ReviewResponse,
    UserResponse,
)
from security import PasswordHasher, TokenCodec

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 6
DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 100


@contextmanager
def transaction(session: Session):
    try:
        yield
        session.commit()
    except Exception:
        session.rollback()
        raise


# ----------------------------------------------------------------------------
# ORM -> DTO mapping
# ----------------------------------------------------------------------------

def user_to_dto(user: User) -> UserResponse:
    return UserResponse(
        id=user.id,
        email=user.email,
        role=user.role,
        created_at=user.created_at,
        updated_at=user.updated_at,
    )


def category_to_dto(category: Category) -> CategoryResponse:
    return CategoryResponse(
        id=category.id,
        name=category.name,
        created_at=category.created_at,
        updated_at=category.updated_at,
    )


def product_to_dto(product: Product) -> ProductResponse:
    return ProductResponse(
        id=product.id,
        name=product.name,
        description=product.description or "",
        price=product.price,
        stock=product.stock,
        image_url=product.image_url or "",
        category_id=product.category_id,
        category=category_to_dto(product.category) if product.category is not None else None,
        created_at=product.created_at,
        updated_at=product.updated_at,
    )


def order_to_dto(order: Order) -> OrderResponse:
    return OrderResponse(
        id=order.id,
        order_date=order.order_date,
        total_amount=order.total_amount,
        status=order.status,
        user_id=order.user_id,
        order_items=[
            OrderItemResponse(
                id=item.id,
                quantity=item.quantity,
                price=item.price,
                product=product_to_dto(item.product),
            )
            for item in order.items
        ],
        created_at=order.created_at,
        updated_at=order.updated_at,
    )


def mask_email(email: str) -> str:
    """jane.doe@example.com -> ja***@example.com"""
    local, sep, domain = email.partition("@")
    if not sep:
        return "***"
    visible = local[:2] if len(local) > 2 else local[:1]
    return f"{visible}***@{domain}"


def review_to_dto(review: Review) -> ReviewResponse:
    return ReviewResponse(
        id=review.id,
        rating=review.rating,
        comment=review.comment or None,
        user_id=review.user_id,
        user_email=mask_email(review.user.email) if review.user is not None else "",
        product_id=review.product_id,
        created_at=review.created_at,
        updated_at=review.updated_at,
    )


# ----------------------------------------------------------------------------
# Users & Auth
# ----------------------------------------------------------------------------

class UserService:
    def __init__(self, session: Session, hasher: PasswordHasher):
        self.session = session
        self.users = UserRepository(session)
        self.hasher = hasher

    def create(self, email: str, password: str, role: Role = Role.USER) -> User:
        if not email or not password:
            raise validation("email and password are required")
        if self.users.get_by_email(email) is not None:
            raise conflict("email already exists")
        user = User(email=email, password=self.hasher.hash(password), role=role.value)
        try:
            with transaction(self.session):
                self.users.add(user)
        except IntegrityError:
            raise conflict("email already exists")
        logger.info("user created: %s (%s)", user.id, user.role)
        return user

    def get(self, user_id: str) -> User:
        user = self.users.get(user_id)
        if user is None:
            raise not_found("user not found")
        return user

    def list(self) -> List[UserResponse]:
        return [user_to_dto(u) for u in self.users.list()]

    def update(self, user_id: str, email: str, password: str) -> User:
        if not email or not password:
            raise validation("email and password are required")
        user = self.get(user_id)
        if email != user.email:
            other = self.users.get_by_email(email)
            if other is not None and other.id != user.id:
                raise conflict("email already exists")
        try:
            with transaction(self.session):
                user.email = email
                user.password = self.hasher.hash(password)
                self.session.flush()
        except IntegrityError:
            raise conflict("email already exists")
        return user

    def delete(self, user_id: str) -> None:
        user = self.get(user_id)
        with transaction(self.session):
            self.users.delete(user)
        logger.info("user deleted: %s", user_id)


class AuthService:
    def __init__(self, session: Session, settings: Settings, hasher: Optional[PasswordHasher] = None):
        self.hasher = hasher or PasswordHasher(settings.bcrypt_rounds)
        self.tokens = TokenCodec(settings)
        self.users = UserRepository(session)
        self.user_service = UserService(session, self.hasher)

    def issue_token(self, user: User) -> str:
        return self.tokens.encode(user.id, user.email, user.role)

    def register(self, email: str, password: str) -> LoginResponse:
        if not email or not password:
            raise validation("email and password are required")
        if len(password) < MIN_PASSWORD_LENGTH:
            raise validation(f"password must be at least {MIN_PASSWORD_LENGTH} characters")
        user = self.user_service.create(email, password)
        logger.info("user registered: %s", user.id)
        return LoginResponse(token=self.issue_token(user), user=user_to_dto(user))

    def login(self, email: str, password: str) -> LoginResponse:
        if not email or not password:
            raise validation("email and password are required")
        user = self.users.get_by_email(email)
        if user is None or not self.hasher.verify(password, user.password):
            logger.warning("failed login for %s", email)
            raise unauthorized("invalid email or password")
        return LoginResponse(token=self.issue_token(user), user=user_to_dto(user))

    def current_user(self, user_id: str) -> UserResponse:
        return user_to_dto(self.user_service.get(user_id))


# ----------------------------------------------------------------------------
# Categories
# ----------------------------------------------------------------------------

class CategoryService:
    def __init__(self, session: Session):
        self.session = session
        self.categories = CategoryRepository(session)

    def _get(self, category_id: str) -> Category:
        category = self.categories.get(category_id)
        if category is None:
            raise not_found("category not found")
        return category

    def list(self) -> List[CategoryResponse]:
        return [category_to_dto(c) for c in self.categories.list()]

    def get(self, category_id: str) -> CategoryResponse:
        return category_to_dto(self._get(category_id))

    def create(self, name: str) -> CategoryResponse:
        if not name:
            raise validation("category name is required")
        if self.categories.get_by_name(name) is not None:
            raise conflict("a category with this name already exists")
        category = Category(name=name)
        try:
            with transaction(self.session):
                self.categories.add(category)
        except IntegrityError:
            raise conflict("a category with this name already exists")
        logger.info("category created: %s", name)
        return category_to_dto(category)

    def update(self, category_id: str, name: str) -> CategoryResponse:
        if not name:
            raise validation("category name is required")
        category = self._get(category_id)
        if name != category.name and self.categories.get_by_name(name) is not None:
            raise conflict("a category with this name already exists")
        try:
            with transaction(self.session):
                category.name = name
                self.session.flush()
        except IntegrityError:
            raise conflict("a category with this name already exists")
        return category_to_dto(category)

    def delete(self, category_id: str) -> None:
        category = self._get(category_id)
        with transaction(self.session):
            self.categories.delete(category)
        logger.info("category deleted: %s", category_id)


# ----------------------------------------------------------------------------
# Products
# ----------------------------------------------------------------------------

class ProductService:
    def __init__(self, session: Session):
        self.session = session
        self.products = ProductRepository(session)
        self.categories = CategoryRepository(session)

    def _get(self, product_id: str) -> Product:
        product = self.products.get(product_id)
        if product is None:
            raise not_found("product not found")
        return product

    def _check_category(self, category_id: str) -> Category:
        category = self.categories.get(category_id)
        if category is None:
            raise validation("category not found")
        return category

    def _check_name_free(self, name: str, product: Optional[Product] = None) -> None:
        if product is not None and name == product.name:
            return
        if self.products.get_by_name(name) is not None:
            raise conflict("a product with this name already exists")

    @staticmethod
    def _validate(req: ProductRequest) -> None:
        if not req.name:
            raise validation("product name is required")
        if req.price <= 0:
            raise validation("price must be greater than 0")
        if req.stock < 0:
            raise validation("stock cannot be negative")

    def _save(self, product: Product) -> ProductResponse:
        try:
            with transaction(self.session):
                self.products.add(product)
        except IntegrityError:
            raise conflict("a product with this name already exists")
        self.session.refresh(product)
        return product_to_dto(product)

    def list(self) -> List[ProductResponse]:
        return [product_to_dto(p) for p in self.products.list()]

    def list_paginated(self, page: int, limit: int) -> PaginatedProductsResponse:
        if page < 1:
            page = 1
        if limit < 1:
            limit = DEFAULT_PAGE_SIZE
        if limit > MAX_PAGE_SIZE:
            limit = MAX_PAGE_SIZE
        products, total = self.products.page((page - 1) * limit, limit)
        total_pages = max(1, math.ceil(total / limit))
        return PaginatedProductsResponse(
            products=[product_to_dto(p) for p in products],
            total=total,
            page=page,
            limit=limit,
            total_pages=total_pages,
            has_next=page < total_pages,
            has_prev=page > 1,
        )

    def get(self, product_id: str) -> ProductResponse:
        return product_to_dto(self._get(product_id))

    def create(self, req: ProductRequest) -> ProductResponse:
        self._validate(req)
        self._check_name_free(req.name)
        if req.category_id:
            self._check_category(req.category_id)
        product = Product(
            name=req.name,
            description=req.description or None,
            price=req.price,
            stock=req.stock,
            image_url=req.image_url or None,
            category_id=req.category_id or None,
        )
        result = self._save(product)
        logger.info("product created: %s (%s)", product.name, product.id)
        return result

    def update(self, product_id: str, req: ProductRequest) -> ProductResponse:
        self._validate(req)
        product = self._get(product_id)
        self._check_name_free(req.name, product)
        if req.category_id:
            self._check_category(req.category_id)
        product.name = req.name
        product.price = req.price
        product.stock = req.stock
        if req.description:
            product.description = req.description
        if req.image_url:
            product.image_url = req.image_url
        product.category_id = req.category_id or None
        return self._save(product)

    def patch(self, product_id: str, req: PatchProductRequest) -> ProductResponse:
        product = self._get(product_id)
        changes: Dict[str, object] = {}
        if req.name is not None:
            if not req.name:
                raise validation("product name is required")
            self._check_name_free(req.name, product)
            changes["name"] = req.name
        if req.description is not None:
            changes["description"] = req.description
        if req.price is not None:
            if req.price <= 0:
                raise validation("price must be greater than 0")
            changes["price"] = req.price
        if req.stock is not None:
            if req.stock < 0:
                raise validation("stock cannot be negative")
            changes["stock"] = req.stock
        if req.image_url is not None:
            changes["image_url"] = req.image_url
        if req.category_id is not None:
            if req.category_id:
                self._check_category(req.category_id)
            changes["category_id"] = req.category_id or None
        if not changes:
            raise validation("at least one field must be provided")
        for field, value in changes.items():
            setattr(product, field, value)
        return self._save(product)

    def delete(self, product_id: str) -> None:
        product = self._get(product_id)
        try:
            with transaction(self.session):
                self.products.delete(product)
        except IntegrityError:
            raise conflict("product is referenced by existing orders")
        logger.info("product deleted: %s", product_id)


# ----------------------------------------------------------------------------
# Orders
# ----------------------------------------------------------------------------

class OrderService:
    def __init__(self, session: Session):
        self.session = session
        self.orders = OrderRepository(session)
        self.products = ProductRepository(session)
        self.users = UserRepository(session)

    def create_order(self, user_id: str, items: List[OrderItemRequest]) -> OrderResponse:
        """Places an order in one transaction.

        Products are row-locked before the stock check so that concurrent
        orders on the same product serialise. Nothing is written unless every
        item can be served.
        """
        if not items:
            raise validation("an order must contain at least one product")
        for item in items:
            if item.quantity <= 0:
                raise validation("quantity must be greater than 0")

        wanted: Dict[str, int] = OrderedDict()
        for item in items:
            wanted[item.product_id] = wanted.get(item.product_id, 0) + item.quantity

        with transaction(self.session):
            if self.users.get(user_id) is None:
                raise not_found("user not found")
            locked = {p.id: p for p in self.products.get_for_update(wanted)}
            for product_id, quantity in wanted.items():
                product = locked.get(product_id)
                if product is None:
                    raise validation(f"product with ID {product_id} not found")
                if product.stock < quantity:
                    logger.warning("order rejected for %s: %s has %d, wanted %d", user_id, product.id, product.stock, quantity)
                    raise validation(
                        f"insufficient stock for product {product.name} (available stock: {product.stock})"
                    )

            total = sum(locked[item.product_id].price * item.quantity for item in items)
            order = Order(user_id=user_id, total_amount=total, status=OrderStatus.PENDING.value)
            for item in items:
                product = locked[item.product_id]
                order.items.append(OrderItem(product=product, quantity=item.quantity, price=product.price))
            for product_id, quantity in wanted.items():
                locked[product_id].stock -= quantity
            self.orders.add(order)

        logger.info("order placed: %s by %s, %d item(s), total %.2f", order.id, user_id, len(items), total)
        return order_to_dto(self.orders.get(order.id))

    def list_for_user(self, user_id: str) -> List[OrderResponse]:
        return [order_to_dto(o) for o in self.orders.list_for_user(user_id)]

    def list_all(self) -> List[OrderResponse]:
        return [order_to_dto(o) for o in self.orders.list()]

    def get(self, order_id: str, user_id: str, is_admin: bool) -> OrderResponse:
        order = self.orders.get(order_id)
        # someone else's order looks the same as a missing one
        if order is None or (not is_admin and order.user_id != user_id):
            raise not_found("order not found")
        return order_to_dto(order)

    def update_status(self, order_id: str, status: str) -> OrderResponse:
        try:
            new_status = OrderStatus(status)
        except ValueError:
            raise validation("invalid status, accepted values: PENDING, SHIPPED, DELIVERED, CANCELLED")
        order = self.orders.get(order_id)
        if order is None:
            raise not_found("order not found")
        with transaction(self.session):
            order.status = new_status.value
            self.session.flush()
        logger.info("order %s status -> %s", order_id, new_status.value)
        return order_to_dto(order)


# ----------------------------------------------------------------------------
# Reviews
# ----------------------------------------------------------------------------

class ReviewService:
    def __init__(self, session: Session):
        self.session = session
        self.reviews = ReviewRepository(session)
        self.products = ProductRepository(session)
        self.users = UserRepository(session)

    def _require_product(self, product_id: str) -> Product:
        product = self.products.get(product_id)
        if product is None:
            raise not_found("product not found")
        return product

    def _get_owned(self, review_id: str, user_id: str, action: str) -> Review:
        review = self.reviews.get(review_id)
        if review is None:
            raise not_found("review not found")
        if review.user_id != user_id:
            raise forbidden(f"you are not allowed to {action} this review")
        return review

    def create(self, user_id: str, product_id: str, rating: int, comment: Optional[str]) -> ReviewResponse:
        """Creates the user's review of a product, or replaces the existing one."""
        if rating < 1 or rating > 5:
            raise validation("rating must be between 1 and 5")
        self._require_product(product_id)
        if self.users.get(user_id) is None:
            raise not_found("user not found")
        try:
            review = self._write(user_id, product_id, rating, comment)
        except IntegrityError:
            # a concurrent first review by the same user took the unique slot
            logger.warning("review insert collided for %s on %s, updating instead", user_id, product_id)
            try:
                review = self._write(user_id, product_id, rating, comment)
            except IntegrityError:
                raise conflict("the review could not be saved, please retry")
        self.session.refresh(review)
        return review_to_dto(review)

    def _write(self, user_id: str, product_id: str, rating: int, comment: Optional[str]) -> Review:
        review = self.reviews.get_for_user_product(user_id, product_id)
        with transaction(self.session):
            if review is not None:
                review.rating = rating
                review.comment = comment or None
                self.session.flush()
            else:
                review = self.reviews.add(
                    Review(user_id=user_id, product_id=product_id, rating=rating, comment=comment or None)
                )
        return review

    def product_reviews(self, product_id: str) -> ProductReviewsResponse:
        self._require_product(product_id)
        reviews = self.reviews.list_for_product(product_id)
        average = 0.0
        if reviews:
            average = round(sum(r.rating for r in reviews) / len(reviews), 1)
        return ProductReviewsResponse(
            reviews=[review_to_dto(r) for r in reviews],
            average_rating=average,
            total_reviews=len(reviews),
        )

    def user_review(self, user_id: str, product_id: str) -> ReviewResponse:
        review = self.reviews.get_for_user_product(user_id, product_id)
        if review is None:
            raise not_found("review not found")
        return review_to_dto(review)

    def update(self, review_id: str, user_id: str, rating: Optional[int], comment: Optional[str]) -> ReviewResponse:
        if rating is not None and (rating < 1 or rating > 5):
            raise validation("rating must be between 1 and 5")
        review = self._get_owned(review_id, user_id, "modify")
        if rating is None and comment is None:
            raise validation("nothing to update")
        with transaction(self.session):
            if rating is not None:
                review.rating = rating
            if comment is not None:
                review.comment = comment or None
            self.session.flush()
        self.session.refresh(review)
        return review_to_dto(review)

    def delete(self, review_id: str, user_id: str) -> None:
        review = self._get_owned(review_id, user_id, "delete")
        with transaction(self.session):
            self.reviews.delete(review)
