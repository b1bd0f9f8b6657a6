import logging
from contextlib import asynccontextmanager
from decimal import Decimal
from typing import Any, AsyncIterator, Dict, List, Mapping, Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from bakery_orders import crud
from bakery_orders.models import Company, Order, OrderItem, Product
from bakery_orders.schemas import OrderCreate, OrderFilter

logger = logging.getLogger("orders.repository")


class SqlOrderRepository:
    """
    Persistence boundary used by OrderService, backed by one AsyncSession.

    Writes issued inside `transaction()` are committed together when the
    block exits and rolled back if it raises. Writes issued outside of it
    are committed one by one.
    """

    def __init__(self, session: AsyncSession):
        self.session = session
        self._in_transaction = False

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        self._in_transaction = True
        try:
            yield
        except Exception:
            await self.session.rollback()
            logger.info("[Orders] Transaction rolled back")
            raise
        else:
            await self.session.commit()
        finally:
            self._in_transaction = False

    async def _commit(self) -> None:
        if not self._in_transaction:
            await self.session.commit()

    async def find_company(self, company_id: int) -> Optional[Company]:
        return await crud.find_company(company_id, self.session)

    async def find_products_by_ids(self, product_ids: Sequence[int]) -> List[Product]:
        return await crud.find_products_by_ids(product_ids, self.session)

    async def find_order(self, order_id: int) -> Optional[Order]:
        return await crud.find_order(order_id, self.session)

    async def find_orders(
        self,
        order_filter: OrderFilter,
        offset: int = 0,
        limit: Optional[int] = None,
    ) -> List[Order]:
        return await crud.find_orders(order_filter, self.session, offset=offset, limit=limit)

    async def count_orders(self, order_filter: OrderFilter) -> int:
        return await crud.count_orders(order_filter, self.session)

    async def sum_order_values(self, order_filter: OrderFilter) -> Decimal:
        return await crud.sum_order_values(order_filter, self.session)

    async def count_orders_by_status(self, order_filter: OrderFilter) -> Dict[str, int]:
        return await crud.count_orders_by_status(order_filter, self.session)

    async def create_order_with_items(self, order_in: OrderCreate) -> Order:
        try:
            order = await crud.create_order_with_items(order_in, self.session)
        except Exception:
            if not self._in_transaction:
                await self.session.rollback()
            raise
        await self._commit()
        return order

    async def update_order(self, order_id: int, patch: Mapping[str, Any]) -> Optional[Order]:
        try:
            order = await crud.update_order(order_id, patch, self.session)
        except Exception:
            if not self._in_transaction:
                await self.session.rollback()
            raise
        await self._commit()
        return order

    async def update_order_item(self, item_id: int, patch: Mapping[str, Any]) -> Optional[OrderItem]:
        item = await crud.update_order_item(item_id, patch, self.session)
        await self._commit()
        return item
