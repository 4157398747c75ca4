"""
Demo Catalog Seed

Small nursery catalog used in demo mode and by local development.
Prices are dollars; stock is units on hand per size.
"""
from typing import List
from dataclasses import dataclass, field
import logging

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from .models import ProductModel, ProductSizeModel, UserModel

logger = logging.getLogger(__name__)


@dataclass
class SeedSize:
    """Size offered for a seeded product."""
    size_id: str
    label: str
    height: str
    price: float
    stock: int


@dataclass
class SeedProduct:
    """Product data structure for seeding."""
    product_id: str
    name: str
    slug: str
    thumbnail_url: str
    active: bool = True
    sizes: List[SeedSize] = field(default_factory=list)


DEMO_CATALOG: List[SeedProduct] = [
    SeedProduct(
        product_id="palm-1",
        name="Windmill Palm",
        slug="windmill-palm",
        thumbnail_url="https://demo.gopalmtrees.com/images/windmill-palm.jpg",
        sizes=[
            SeedSize("sm", "Small", "3-4 ft", 79.99, 12),
            SeedSize("md", "Medium", "5-6 ft", 129.99, 5),
            SeedSize("lg", "Large", "8-10 ft", 349.00, 2),
        ]
    ),
    SeedProduct(
        product_id="palm-2",
        name="Needle Palm",
        slug="needle-palm",
        thumbnail_url="https://demo.gopalmtrees.com/images/needle-palm.jpg",
        sizes=[
            SeedSize("sm", "Small", "2-3 ft", 69.99, 8),
            SeedSize("md", "Medium", "4-5 ft", 149.99, 4),
        ]
    ),
    SeedProduct(
        product_id="banana-1",
        name="Hardy Banana",
        slug="hardy-banana",
        thumbnail_url="https://demo.gopalmtrees.com/images/hardy-banana.jpg",
        sizes=[
            SeedSize("3gal", "3 Gallon", "2-3 ft", 39.99, 20),
        ]
    ),
    SeedProduct(
        product_id="yucca-1",
        name="Yucca Rostrata",
        slug="yucca-rostrata",
        thumbnail_url="https://demo.gopalmtrees.com/images/yucca-rostrata.jpg",
        active=False,  # off-season
        sizes=[
            SeedSize("md", "Medium", "3-4 ft", 299.00, 3),
        ]
    ),
]

DEMO_USER_ID = "user_demo_001"
DEMO_USER_EMAIL = "demo@gopalmtrees.com"


async def seed_demo_catalog(db: AsyncSession) -> bool:
    """
    Insert the demo catalog and demo user if the products table is empty.

    Returns:
        True if rows were inserted, False if a catalog already existed
    """
    existing = await db.scalar(select(func.count()).select_from(ProductModel))
    if existing:
        logger.debug(f"Catalog already has {existing} products, skipping seed")
        return False

    for product in DEMO_CATALOG:
        db.add(ProductModel(
            id=product.product_id,
            name=product.name,
            slug=product.slug,
            thumbnail_url=product.thumbnail_url,
            active=product.active,
            sizes=[
                ProductSizeModel(
                    id=size.size_id,
                    label=size.label,
                    height=size.height,
                    price=size.price,
                    stock=size.stock,
                    sku=f"{product.product_id}-{size.size_id}".upper()
                )
                for size in product.sizes
            ]
        ))

    if await db.get(UserModel, DEMO_USER_ID) is None:
        db.add(UserModel(id=DEMO_USER_ID, email=DEMO_USER_EMAIL, display_name="Demo Customer"))

    await db.commit()
    logger.info(f"Seeded demo catalog with {len(DEMO_CATALOG)} products")
    return True
