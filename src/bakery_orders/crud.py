from datetime import datetime, time, timedelta, timezone
from enum import Enum
from decimal import Decimal
from typing import Any, Dict, List, Mapping, Optional, Sequence

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload, selectinload

from bakery_orders.errors import BadRequestError
from bakery_orders.models import Company, Order, OrderItem, Product, utcnow
from bakery_orders.schemas import OrderCreate, OrderFilter

ORDER_LOAD_OPTIONS = (
    joinedload(Order.company),
    selectinload(Order.items).joinedload(OrderItem.product),
)

# columns a caller may patch through update_order
ORDER_PATCHABLE = frozenset({"status", "total_value", "pdf_path", "pdf_url", "deleted_at"})
ITEM_PATCHABLE = frozenset({"quantity", "subtotal"})


async def find_company(
    company_id: int,
    session: AsyncSession
) -> Company | None:
    """
    Returns an active (not soft-deleted) company or None.
    """
    result = await session.execute(
        select(Company).where(Company.id == company_id, Company.deleted_at.is_(None))
    )
    return result.scalar_one_or_none()

async def find_products_by_ids(
    product_ids: Sequence[int],
    session: AsyncSession
) -> List[Product]:
    if not product_ids:
        return []
    result = await session.execute(
        select(Product).where(Product.id.in_(product_ids), Product.deleted_at.is_(None))
    )
    return list(result.scalars().all())

async def find_order(
    order_id: int,
    session: AsyncSession,
    include_deleted: bool = False
) -> Order | None:
    """
    Returns the order with its company and items loaded, or None.
    Soft-deleted orders are skipped unless include_deleted is set.
    """
    stmt = select(Order).where(Order.id == order_id).options(*ORDER_LOAD_OPTIONS)
    if not include_deleted:
        stmt = stmt.where(Order.deleted_at.is_(None))
    result = await session.execute(stmt.execution_options(populate_existing=True))
    return result.unique().scalar_one_or_none()

def _where(stmt, order_filter: OrderFilter):
    stmt = stmt.where(Order.deleted_at.is_(None))
    if order_filter.company_id is not None:
        stmt = stmt.where(Order.company_id == order_filter.company_id)
    if order_filter.status is not None:
        stmt = stmt.where(Order.status == order_filter.status.value)
    if order_filter.statuses:
        stmt = stmt.where(Order.status.in_([s.value for s in order_filter.statuses]))
    if order_filter.start_date is not None:
        stmt = stmt.where(Order.created_at >= datetime.combine(order_filter.start_date, time.min, tzinfo=timezone.utc))
    if order_filter.end_date is not None:
        # end date is inclusive
        stmt = stmt.where(Order.created_at < datetime.combine(order_filter.end_date + timedelta(days=1), time.min, tzinfo=timezone.utc))
    if order_filter.created_from is not None:
        stmt = stmt.where(Order.created_at >= order_filter.created_from)
    return stmt

async def find_orders(
    order_filter: OrderFilter,
    session: AsyncSession,
    offset: int = 0,
    limit: Optional[int] = None
) -> List[Order]:
    """
    Returns matching orders, newest first.
    """
    stmt = _where(select(Order), order_filter).options(*ORDER_LOAD_OPTIONS)
    stmt = stmt.order_by(Order.created_at.desc(), Order.id.desc()).offset(offset)
    if limit is not None:
        stmt = stmt.limit(limit)
    result = await session.execute(stmt)
    return list(result.unique().scalars().all())

async def count_orders(
    order_filter: OrderFilter,
    session: AsyncSession
) -> int:
    result = await session.execute(_where(select(func.count(Order.id)), order_filter))
    return result.scalar_one()

async def sum_order_values(
    order_filter: OrderFilter,
    session: AsyncSession
) -> Decimal:
    result = await session.execute(_where(select(func.sum(Order.total_value)), order_filter))
    return result.scalar_one() or Decimal("0.00")

async def count_orders_by_status(
    order_filter: OrderFilter,
    session: AsyncSession
) -> Dict[str, int]:
    stmt = _where(select(Order.status, func.count(Order.id)), order_filter).group_by(Order.status)
    result = await session.execute(stmt)
    return {status: count for status, count in result.all()}

async def create_order_with_items(
    order_in: OrderCreate,
    session: AsyncSession
) -> Order:
    """
    Adds the order and its items and flushes, so the caller's transaction
    decides whether both are committed.
    """
    order = Order(
        company_id=order_in.company_id,
        created_by=order_in.created_by,
        status=order_in.status.value,
        total_value=order_in.total_value,
        pdf_path="",
        created_at=utcnow(),
        items=[
            OrderItem(
                product_id=item.product_id,
                quantity=item.quantity,
                unit_price=item.unit_price,
                subtotal=item.subtotal,
            )
            for item in order_in.items
        ],
    )
    session.add(order)
    try:
        await session.flush()  # assigns order.id
    except IntegrityError as e:
        raise BadRequestError(f"Order could not be saved: {e.orig}") from e

    return await find_order(order.id, session)

async def update_order(
    order_id: int,
    patch: Mapping[str, Any],
    session: AsyncSession
) -> Order | None:
    unknown = set(patch) - ORDER_PATCHABLE
    if unknown:
        raise ValueError(f"Cannot patch order fields: {sorted(unknown)}")

    order = await find_order(order_id, session)
    if order is None:
        return None
    for field, value in patch.items():
        setattr(order, field, value.value if isinstance(value, Enum) else value)
    order.updated_at = utcnow()
    try:
        await session.flush()
    except IntegrityError as e:
        raise BadRequestError(f"Order could not be saved: {e.orig}") from e
    return order

async def update_order_item(
    item_id: int,
    patch: Mapping[str, Any],
    session: AsyncSession
) -> OrderItem | None:
    unknown = set(patch) - ITEM_PATCHABLE
    if unknown:
        raise ValueError(f"Cannot patch item fields: {sorted(unknown)}")

    item = await session.get(OrderItem, item_id)
    if item is None:
        return None
    for field, value in patch.items():
        setattr(item, field, value)
    await session.flush()
    return item
