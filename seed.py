"""
Seed data (idempotent): an admin account, a few categories and products.

Run with ``python seed.py``; it uses the same environment as the API.
"""
import logging

from sqlalchemy.orm import Session

from config import Settings
from database import init_db, make_engine, make_session_factory
from logging_config import setup_logging
from models import Category, Product, Role, User
from repositories import CategoryRepository, ProductRepository, UserRepository
from security import PasswordHasher

logger = logging.getLogger(__name__)

ADMIN_EMAIL = "momo@ynov.com"
ADMIN_PASSWORD = "Password2025"

SAMPLE_CATEGORIES = ["Visage", "Corps", "Cheveux", "Homme"]

SAMPLE_PRODUCTS = [
    {
        "name": "Crème hydratante visage",
        "description": "Crème hydratante quotidienne pour tous les types de peaux. Formule enrichie en acide hyaluronique.",
        "price": 29.99,
        "stock": 50,
        "image_url": "https://example.com/images/creme-hydratante.jpg",
        "category": "Visage",
    },
    {
        "name": "Sérum anti-âge",
        "description": "Sérum concentré en peptides et vitamines pour réduire les signes de l'âge.",
        "price": 49.99,
        "stock": 30,
        "image_url": "https://example.com/images/serum-antiage.jpg",
        "category": "Visage",
    },
    {
        "name": "Gel douche relaxant",
        "description": "Gel douche parfumé à la lavande pour un moment de détente quotidien.",
        "price": 15.99,
        "stock": 80,
        "image_url": "https://example.com/images/gel-douche.jpg",
        "category": "Corps",
    },
    {
        "name": "Shampooing réparateur",
        "description": "Shampooing intensif pour cheveux abîmés, enrichi en kératine et protéines.",
        "price": 19.99,
        "stock": 60,
        "image_url": "https://example.com/images/shampooing.jpg",
        "category": "Cheveux",
    },
    {
        "name": "Soin après-rasage",
        "description": "Lotion apaisante après-rasage pour homme, réduit les irritations.",
        "price": 24.99,
        "stock": 40,
        "image_url": "https://example.com/images/apres-rasage.jpg",
        "category": "Homme",
    },
]


def seed_data(session: Session, hasher: PasswordHasher) -> None:
    users = UserRepository(session)
    categories = CategoryRepository(session)
    products = ProductRepository(session)

    admin = users.get_by_email(ADMIN_EMAIL)
    if admin is None:
        admin = users.add(User(email=ADMIN_EMAIL, password=hasher.hash(ADMIN_PASSWORD), role=Role.ADMIN.value))
        logger.info("admin created: %s", ADMIN_EMAIL)
    elif admin.role != Role.ADMIN.value:
        admin.role = Role.ADMIN.value
        logger.info("admin role restored for %s", ADMIN_EMAIL)

    category_ids = {}
    for name in SAMPLE_CATEGORIES:
        category = categories.get_by_name(name) or categories.add(Category(name=name))
        category_ids[name] = category.id

    for p in SAMPLE_PRODUCTS:
        if products.get_by_name(p["name"]) is not None:
            continue
        products.add(
            Product(
                name=p["name"],
                description=p["description"],
                price=p["price"],
                stock=p["stock"],
                image_url=p["image_url"],
                category_id=category_ids.get(p["category"]),
            )
        )
        logger.info("product created: %s", p["name"])

    session.commit()


if __name__ == "__main__":
    settings = Settings.from_env()
    setup_logging(settings.log_level)
    engine = make_engine(settings.database_url)
    init_db(engine)
    with make_session_factory(engine)() as session:
        seed_data(session, PasswordHasher(settings.bcrypt_rounds))
    logger.info("seed complete, admin account: %s", ADMIN_EMAIL)
