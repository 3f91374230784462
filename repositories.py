"""
Per-entity query objects.

Services talk to these instead of building SQLAlchemy statements, so every
query the application runs is listed here. Repositories flush but never
commit; the caller owns the transaction.
"""
from typing import Iterable, List, Optional, Tuple

from sqlalchemy import func, select
from sqlalchemy.orm import Session, joinedload, selectinload

from models import Category, Order, OrderItem, Product, Review, User


class Repository:
    def __init__(self, session: Session):
        self.session = session

    def add(self, obj):
        self.session.add(obj)
        self.session.flush()
        return obj

    def delete(self, obj) -> None:
        self.session.delete(obj)
        self.session.flush()


class UserRepository(Repository):
    def get(self, user_id: str) -> Optional[User]:
        return self.session.get(User, user_id)

    def get_by_email(self, email: str) -> Optional[User]:
        return self.session.scalars(select(User).where(User.email == email)).first()

    def list(self) -> List[User]:
        return list(self.session.scalars(select(User).order_by(User.created_at)))


class CategoryRepository(Repository):
    def get(self, category_id: str) -> Optional[Category]:
        return self.session.get(Category, category_id)

    def get_by_name(self, name: str) -> Optional[Category]:
        return self.session.scalars(select(Category).where(Category.name == name)).first()

    def list(self) -> List[Category]:
        return list(self.session.scalars(select(Category).order_by(Category.name)))


class ProductRepository(Repository):
    def get(self, product_id: str) -> Optional[Product]:
        stmt = select(Product).options(joinedload(Product.category)).where(Product.id == product_id)
        return self.session.scalars(stmt).first()

    def get_by_name(self, name: str) -> Optional[Product]:
        return self.session.scalars(select(Product).where(Product.name == name)).first()

    def get_for_update(self, product_ids: Iterable[str]) -> List[Product]:
        """Loads and row-locks the given products, in id order."""
        ids = sorted(set(product_ids))
        if not ids:
            return []
        stmt = select(Product).where(Product.id.in_(ids)).order_by(Product.id).with_for_update()
        return list(self.session.scalars(stmt))

    def list(self) -> List[Product]:
        stmt = select(Product).options(joinedload(Product.category)).order_by(Product.created_at, Product.id)
        return list(self.session.scalars(stmt))

    def count(self) -> int:
        return self.session.scalar(select(func.count()).select_from(Product))

    def page(self, offset: int, limit: int) -> Tuple[List[Product], int]:
        stmt = (
            select(Product)
            .options(joinedload(Product.category))
            .order_by(Product.created_at, Product.id)
            .offset(offset)
            .limit(limit)
        )
        return list(self.session.scalars(stmt)), self.count()


def _order_query():
    return select(Order).options(
        selectinload(Order.items).joinedload(OrderItem.product).joinedload(Product.category)
    )


class OrderRepository(Repository):
    def get(self, order_id: str) -> Optional[Order]:
        return self.session.scalars(_order_query().where(Order.id == order_id)).first()

    def list(self) -> List[Order]:
        stmt = _order_query().order_by(Order.order_date.desc())
        return list(self.session.scalars(stmt))

    def list_for_user(self, user_id: str) -> List[Order]:
        stmt = _order_query().where(Order.user_id == user_id).order_by(Order.order_date.desc())
        return list(self.session.scalars(stmt))


class ReviewRepository(Repository):
    def get(self, review_id: str) -> Optional[Review]:
        stmt = select(Review).options(joinedload(Review.user)).where(Review.id == review_id)
        return self.session.scalars(stmt).first()

    def get_for_user_product(self, user_id: str, product_id: str) -> Optional[Review]:
        stmt = (
            select(Review)
            .options(joinedload(Review.user))
            .where(Review.user_id == user_id, Review.product_id == product_id)
        )
        return self.session.scalars(stmt).first()

    def list_for_product(self, product_id: str) -> List[Review]:
        stmt = (
            select(Review)
            .options(joinedload(Review.user))
            .where(Review.product_id == product_id)
            .order_by(Review.created_at.desc())
        )
        return list(self.session.scalars(stmt))
