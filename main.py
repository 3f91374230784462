import logging
from typing import Iterator, List, Optional, Union

from fastapi import APIRouter, Depends, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from config import Settings
from database import init_db, make_engine, make_session_factory, session_scope
from errors import ServiceError, forbidden, unauthorized
from logging_config import setup_logging
from models import Role
from schemas import (
    CategoryRequest,
    CategoryResponse,
    CreateOrderRequest,
    CreateReviewRequest,
    LoginRequest,
    LoginResponse,
    MessageResponse,
    OrderResponse,
    PaginatedProductsResponse,
    PatchProductRequest,
    ProductRequest,
    ProductResponse,
    ProductReviewsResponse,
    ReviewResponse,
    TokenClaims,
    UpdateOrderStatusRequest,
    UpdateReviewRequest,
    UserRequest,
    UserResponse,
)
from security import PasswordHasher, TokenCodec
from services import (
    AuthService,
    CategoryService,
    OrderService,
    ProductService,
    ReviewService,
    UserService,
    user_to_dto,
)

logger = logging.getLogger(__name__)

router = APIRouter()
bearer_scheme = HTTPBearer(auto_error=False)


# ----------------------------------------------------------------------------
# Dependencies
# ----------------------------------------------------------------------------

def get_db(request: Request) -> Iterator[Session]:
    yield from session_scope(request.app.state.session_factory)


def get_claims(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> TokenClaims:
    if not request.headers.get("Authorization"):
        raise unauthorized("authentication token required")
    if credentials is None or not credentials.credentials:
        raise unauthorized("invalid token format, use: Bearer <token>")
    return request.app.state.tokens.claims(credentials.credentials)


def require_role(role: Role):
    def checker(claims: TokenClaims = Depends(get_claims)) -> TokenClaims:
        if claims.role != role.value:
            raise forbidden(f"access denied, role '{role.value}' required")
        return claims

    return checker


require_admin = require_role(Role.ADMIN)


def get_auth_service(request: Request, db: Session = Depends(get_db)) -> AuthService:
    return AuthService(db, request.app.state.settings, request.app.state.hasher)


def get_user_service(request: Request, db: Session = Depends(get_db)) -> UserService:
    return UserService(db, request.app.state.hasher)


def get_category_service(db: Session = Depends(get_db)) -> CategoryService:
    return CategoryService(db)


def get_product_service(db: Session = Depends(get_db)) -> ProductService:
    return ProductService(db)


def get_order_service(db: Session = Depends(get_db)) -> OrderService:
    return OrderService(db)


def get_review_service(db: Session = Depends(get_db)) -> ReviewService:
    return ReviewService(db)


def _check_self_or_admin(claims: TokenClaims, user_id: str, action: str) -> None:
    if claims.user_id != user_id and claims.role != Role.ADMIN.value:
        raise forbidden(f"you can only {action} your own profile")


# ----------------------------------------------------------------------------
# Auth Endpoints
# ----------------------------------------------------------------------------

@router.post("/auth/register", response_model=LoginResponse, status_code=201, tags=["Authentication"])
def register(body: UserRequest, auth: AuthService = Depends(get_auth_service)):
    return auth.register(body.email, body.password)


@router.post("/auth/login", response_model=LoginResponse, tags=["Authentication"])
def login(body: LoginRequest, auth: AuthService = Depends(get_auth_service)):
    return auth.login(body.email, body.password)


@router.get("/auth/me", response_model=UserResponse, tags=["Authentication"])
def me(claims: TokenClaims = Depends(get_claims), auth: AuthService = Depends(get_auth_service)):
    return auth.current_user(claims.user_id)


# ----------------------------------------------------------------------------
# Product Endpoints
# ----------------------------------------------------------------------------

@router.get(
    "/products",
    response_model=Union[List[ProductResponse], PaginatedProductsResponse],
    tags=["Products"],
)
def list_products(
    page: Optional[int] = Query(None, description="Page number, starts at 1"),
    limit: Optional[int] = Query(None, description="Page size (default 10, max 100)"),
    claims: TokenClaims = Depends(get_claims),
    products: ProductService = Depends(get_product_service),
):
    if page is None and limit is None:
        return products.list()
    return products.list_paginated(page or 1, limit or 0)


@router.get("/products/{product_id}", response_model=ProductResponse, tags=["Products"])
def get_product(
    product_id: str,
    claims: TokenClaims = Depends(get_claims),
    products: ProductService = Depends(get_product_service),
):
    return products.get(product_id)


# ----------------------------------------------------------------------------
# Admin: Product Management
# ----------------------------------------------------------------------------

@router.post("/admin/products", response_model=ProductResponse, status_code=201, tags=["Products"])
def admin_create_product(
    body: ProductRequest,
    claims: TokenClaims = Depends(require_admin),
    products: ProductService = Depends(get_product_service),
):
    return products.create(body)


@router.put("/admin/products/{product_id}", response_model=ProductResponse, tags=["Products"])
def admin_update_product(
    product_id: str,
    body: ProductRequest,
    claims: TokenClaims = Depends(require_admin),
    products: ProductService = Depends(get_product_service),
):
    return products.update(product_id, body)


@router.patch("/admin/products/{product_id}", response_model=ProductResponse, tags=["Products"])
def admin_patch_product(
    product_id: str,
    body: PatchProductRequest,
    claims: TokenClaims = Depends(require_admin),
    products: ProductService = Depends(get_product_service),
):
    return products.patch(product_id, body)


@router.delete("/admin/products/{product_id}", status_code=204, response_class=Response, tags=["Products"])
def admin_delete_product(
    product_id: str,
    claims: TokenClaims = Depends(require_admin),
    products: ProductService = Depends(get_product_service),
):
    products.delete(product_id)
    return Response(status_code=204)


# ----------------------------------------------------------------------------
# Admin: Categories
# ----------------------------------------------------------------------------

@router.get("/admin/categories", response_model=List[CategoryResponse], tags=["Categories"])
def admin_list_categories(
    claims: TokenClaims = Depends(require_admin),
    categories: CategoryService = Depends(get_category_service),
):
    return categories.list()


@router.get("/admin/categories/{category_id}", response_model=CategoryResponse, tags=["Categories"])
def admin_get_category(
    category_id: str,
    claims: TokenClaims = Depends(require_admin),
    categories: CategoryService = Depends(get_category_service),
):
    return categories.get(category_id)


@router.post("/admin/categories", response_model=CategoryResponse, status_code=201, tags=["Categories"])
def admin_create_category(
    body: CategoryRequest,
    claims: TokenClaims = Depends(require_admin),
    categories: CategoryService = Depends(get_category_service),
):
    return categories.create(body.name)


@router.put("/admin/categories/{category_id}", response_model=CategoryResponse, tags=["Categories"])
def admin_update_category(
    category_id: str,
    body: CategoryRequest,
    claims: TokenClaims = Depends(require_admin),
    categories: CategoryService = Depends(get_category_service),
):
    return categories.update(category_id, body.name)


@router.delete("/admin/categories/{category_id}", status_code=204, response_class=Response, tags=["Categories"])
def admin_delete_category(
    category_id: str,
    claims: TokenClaims = Depends(require_admin),
    categories: CategoryService = Depends(get_category_service),
):
    categories.delete(category_id)
    return Response(status_code=204)


# ----------------------------------------------------------------------------
# Orders
# ----------------------------------------------------------------------------

@router.post("/orders", response_model=OrderResponse, status_code=201, tags=["Orders"])
def create_order(
    body: CreateOrderRequest,
    claims: TokenClaims = Depends(get_claims),
    orders: OrderService = Depends(get_order_service),
):
    return orders.create_order(claims.user_id, body.items)


@router.get("/orders", response_model=List[OrderResponse], tags=["Orders"])
def my_orders(claims: TokenClaims = Depends(get_claims), orders: OrderService = Depends(get_order_service)):
    return orders.list_for_user(claims.user_id)


@router.get("/orders/{order_id}", response_model=OrderResponse, tags=["Orders"])
def order_detail(
    order_id: str,
    claims: TokenClaims = Depends(get_claims),
    orders: OrderService = Depends(get_order_service),
):
    return orders.get(order_id, claims.user_id, claims.role == Role.ADMIN.value)


@router.get("/admin/orders", response_model=List[OrderResponse], tags=["Orders"])
def admin_orders(claims: TokenClaims = Depends(require_admin), orders: OrderService = Depends(get_order_service)):
    return orders.list_all()


@router.put("/admin/orders/{order_id}/status", response_model=OrderResponse, tags=["Orders"])
def admin_update_order_status(
    order_id: str,
    body: UpdateOrderStatusRequest,
    claims: TokenClaims = Depends(require_admin),
    orders: OrderService = Depends(get_order_service),
):
    return orders.update_status(order_id, body.status)


# ----------------------------------------------------------------------------
# Reviews
# ----------------------------------------------------------------------------

@router.post("/products/{product_id}/reviews", response_model=ReviewResponse, status_code=201, tags=["Reviews"])
def add_review(
    product_id: str,
    body: CreateReviewRequest,
    claims: TokenClaims = Depends(get_claims),
    reviews: ReviewService = Depends(get_review_service),
):
    return reviews.create(claims.user_id, product_id, body.rating, body.comment)


@router.get("/products/{product_id}/reviews", response_model=ProductReviewsResponse, tags=["Reviews"])
def product_reviews(
    product_id: str,
    claims: TokenClaims = Depends(get_claims),
    reviews: ReviewService = Depends(get_review_service),
):
    return reviews.product_reviews(product_id)


@router.get("/products/{product_id}/reviews/me", response_model=ReviewResponse, tags=["Reviews"])
def my_review(
    product_id: str,
    claims: TokenClaims = Depends(get_claims),
    reviews: ReviewService = Depends(get_review_service),
):
    return reviews.user_review(claims.user_id, product_id)


@router.put("/reviews/{review_id}", response_model=ReviewResponse, tags=["Reviews"])
def update_review(
    review_id: str,
    body: UpdateReviewRequest,
    claims: TokenClaims = Depends(get_claims),
    reviews: ReviewService = Depends(get_review_service),
):
    return reviews.update(review_id, claims.user_id, body.rating, body.comment)


@router.delete("/reviews/{review_id}", response_model=MessageResponse, tags=["Reviews"])
def delete_review(
    review_id: str,
    claims: TokenClaims = Depends(get_claims),
    reviews: ReviewService = Depends(get_review_service),
):
    reviews.delete(review_id, claims.user_id)
    return MessageResponse(message="review deleted")


# ----------------------------------------------------------------------------
# Users
# ----------------------------------------------------------------------------

@router.post("/users", response_model=UserResponse, status_code=201, tags=["Users"])
def create_user(body: UserRequest, users: UserService = Depends(get_user_service)):
    return user_to_dto(users.create(body.email, body.password))


@router.get("/user/{user_id}", response_model=UserResponse, tags=["Users"])
def get_user(
    user_id: str,
    claims: TokenClaims = Depends(get_claims),
    users: UserService = Depends(get_user_service),
):
    _check_self_or_admin(claims, user_id, "view")
    return user_to_dto(users.get(user_id))


@router.put("/user/{user_id}", response_model=UserResponse, tags=["Users"])
def update_user(
    user_id: str,
    body: UserRequest,
    claims: TokenClaims = Depends(get_claims),
    users: UserService = Depends(get_user_service),
):
    _check_self_or_admin(claims, user_id, "modify")
    return user_to_dto(users.update(user_id, body.email, body.password))


@router.get("/admin/users", response_model=List[UserResponse], tags=["Users"])
def admin_users(claims: TokenClaims = Depends(require_admin), users: UserService = Depends(get_user_service)):
    return users.list()


@router.delete("/admin/user/{user_id}", status_code=204, response_class=Response, tags=["Users"])
def admin_delete_user(
    user_id: str,
    claims: TokenClaims = Depends(require_admin),
    users: UserService = Depends(get_user_service),
):
    users.delete(user_id)
    return Response(status_code=204)


# ----------------------------------------------------------------------------
# Health
# ----------------------------------------------------------------------------

@router.get("/", tags=["Health"])
def root():
    return {"message": "Skincare shop API running"}


# ----------------------------------------------------------------------------
# Error handling
# ----------------------------------------------------------------------------

async def service_error_handler(request: Request, exc: ServiceError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


async def validation_error_handler(request: Request, exc: RequestValidationError):
    problems = []
    for err in exc.errors():
        location = ".".join(str(part) for part in err.get("loc", ()) if part != "body")
        problems.append(f"{location}: {err.get('msg')}" if location else err.get("msg", "invalid value"))
    return JSONResponse(status_code=400, content={"detail": "invalid request: " + "; ".join(problems)})


async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"detail": "internal server error"})


# ----------------------------------------------------------------------------
# App factory
# ----------------------------------------------------------------------------

def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or Settings.from_env()
    setup_logging(settings.log_level)

    engine = make_engine(settings.database_url)
    init_db(engine)

    app = FastAPI(title="Skincare Shop API", version="1.0.0")
    app.state.settings = settings
    app.state.engine = engine
    app.state.session_factory = make_session_factory(engine)
    app.state.hasher = PasswordHasher(settings.bcrypt_rounds)
    app.state.tokens = TokenCodec(settings)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(ServiceError, service_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
    app.include_router(router)

    logger.info("application ready (database: %s)", engine.url.render_as_string(hide_password=True))
    return app


if __name__ == "__main__":
    import uvicorn

    settings = Settings.from_env()
    uvicorn.run(create_app(settings), host="0.0.0.0", port=settings.port)
