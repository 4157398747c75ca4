"""
Pricing Service

Re-prices a cart from the catalog, checks stock, and computes tax and totals.

Client-submitted prices are never read: a CartLine carries only ids and a
quantity, and every amount here comes from product_sizes.
"""
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
import logging

from ..config import settings
from ..db.models import ProductModel, ProductSizeModel
from ..exceptions import (
    EmptyCartError,
    InsufficientStockError,
    ProductInactiveError,
    ProductNotFoundError,
    SizeNotFoundError,
)
from ..models.orders import CartLine, ValidatedLineItem
from ..money import round_money, to_cents

logger = logging.getLogger(__name__)


# Sales tax by shipping state
TAX_RATES: Dict[str, float] = {
    "NY": 0.08,
    "NJ": 0.06625,
    "FL": 0.07,
    "CT": 0.0635,
    "PA": 0.06,
}
DEFAULT_TAX_RATE = 0.08


@dataclass(frozen=True)
class OrderTotals:
    """Server-computed charge breakdown."""
    subtotal: float
    tax: float
    delivery_fee: float
    total: float

    @property
    def amount_in_cents(self) -> int:
        return to_cents(self.total)


@dataclass(frozen=True)
class PricedLine:
    """Validated line plus the stock it was checked against."""
    item: ValidatedLineItem
    available_stock: int


# ============================================================================
# Pricing Validation
# ============================================================================

async def validate_cart_lines(
    db: AsyncSession,
    cart_lines: List[CartLine]
) -> Tuple[List[PricedLine], float]:
    """
    Re-price every cart line from the catalog.

    Args:
        db: Database session
        cart_lines: Untrusted client cart

    Returns:
        (priced lines, subtotal)

    Raises:
        EmptyCartError, ProductNotFoundError, ProductInactiveError, SizeNotFoundError

    Read-only. All lines are validated before the caller writes anything, so
    a failure on any line leaves nothing usable behind.
    """
    if not cart_lines:
        raise EmptyCartError()

    product_ids = {line.product_id for line in cart_lines}
    result = await db.execute(
        select(ProductModel).where(ProductModel.id.in_(product_ids))
    )
    products = {product.id: product for product in result.scalars().all()}

    priced: List[PricedLine] = []
    subtotal = 0.0

    for line in cart_lines:
        product = products.get(line.product_id)
        if product is None:
            raise ProductNotFoundError(line.product_id)
        if not product.active:
            raise ProductInactiveError(product.id, product.name)

        size = _find_size(product, line.size_id)
        if size is None:
            raise SizeNotFoundError(product.id, product.name, line.size_id)

        item = ValidatedLineItem(
            product_id=product.id,
            product_name=product.name,
            product_image=product.thumbnail_url or "",
            size_id=size.id,
            size_label=size.label,
            unit_price=size.price,
            quantity=line.quantity,
        )
        subtotal = round_money(subtotal + size.price * line.quantity)
        priced.append(PricedLine(item=item, available_stock=size.stock))

    logger.debug(f"Validated {len(priced)} cart lines, subtotal=${subtotal:.2f}")

    return priced, subtotal


def _find_size(product: ProductModel, size_id: str) -> Optional[ProductSizeModel]:
    for size in product.sizes:
        if size.id == size_id:
            return size
    return None


# ============================================================================
# Stock Check
# ============================================================================

def check_stock(priced_lines: List[PricedLine]) -> None:
    """
    Fail if any size is asked for more than is on hand.

    Lines for the same size count together.

    Soft check only: stock can still move before the webhook decrements it.
    The decrement itself is conditional (see order_materializer).
    """
    requested: Dict[Tuple[str, str], int] = {}
    for line in priced_lines:
        key = (line.item.product_id, line.item.size_id)
        requested[key] = requested.get(key, 0) + line.item.quantity
        if line.available_stock < requested[key]:
            raise InsufficientStockError(
                product_id=line.item.product_id,
                product_name=line.item.product_name,
                size_id=line.item.size_id,
                size_label=line.item.size_label,
                available=line.available_stock,
            )


# ============================================================================
# Tax & Totals
# ============================================================================

def get_tax_rate(state: Optional[str]) -> float:
    """Tax rate for a shipping state; unknown or missing states use the default."""
    code = (state or settings.default_tax_state).strip().upper()
    return TAX_RATES.get(code, DEFAULT_TAX_RATE)


def compute_totals(
    subtotal: float,
    state: Optional[str],
    delivery_fee: Optional[float] = None
) -> OrderTotals:
    """
    Compute tax and total for a validated subtotal.

    Example:
        compute_totals(259.98, "NY") -> subtotal=259.98, tax=20.80, total=280.78
    """
    fee = settings.delivery_fee if delivery_fee is None else delivery_fee
    fee = round_money(fee)
    tax = round_money(subtotal * get_tax_rate(state))
    total = round_money(subtotal + tax + fee)

    return OrderTotals(subtotal=round_money(subtotal), tax=tax, delivery_fee=fee, total=total)
