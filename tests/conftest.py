from collections import Counter
from contextlib import asynccontextmanager
from datetime import timedelta
from decimal import Decimal
from enum import Enum

import pytest

from bakery_orders.models import Company, Order, OrderItem, Product, utcnow
from bakery_orders.schemas import PdfArtifact
from bakery_orders.service import OrderService, line_subtotal, order_total
from bakery_orders.tenant import TenantContext
from bakery_orders.transitions import OrderStatus

ORDER_COLUMNS = ("status", "total_value", "pdf_path", "pdf_url", "updated_at", "deleted_at")
ITEM_COLUMNS = ("quantity", "subtotal")

STAFF_EMAIL = "equipe@padaria.test"


# =============================================================================
# Fakes
# =============================================================================

class FakeOrderRepository:
    """In-memory stand-in for SqlOrderRepository, holding ORM instances."""

    def __init__(self):
        self.companies = {}
        self.products = {}
        self.orders = {}
        self.items = {}
        self.commits = 0
        self.rollbacks = 0
        self.last_filter = None
        self._next_order_id = 1
        self._next_item_id = 1

    # --- seeding ---

    def add_company(self, company_id, email=None, trade_name=None, notify_by_email=True, deleted=False):
        company = Company(
            id=company_id,
            legal_name=f"Company {company_id} LTDA",
            trade_name=trade_name or f"Company {company_id}",
            tax_id=f"{company_id:014d}",
            email=email,
            notify_by_email=notify_by_email,
            deleted_at=utcnow() if deleted else None,
        )
        self.companies[company_id] = company
        return company

    def add_product(self, product_id, name, unit_price, deleted=False):
        product = Product(
            id=product_id,
            name=name,
            unit_price=Decimal(unit_price),
            measure_unit="un",
            deleted_at=utcnow() if deleted else None,
        )
        self.products[product_id] = product
        return product

    def add_order(self, company_id, status=OrderStatus.PENDENTE, items=((1, "1"),), created_at=None, deleted=False):
        order = Order(
            id=self._next_order_id,
            company_id=company_id,
            created_by=None,
            status=OrderStatus(status).value,
            pdf_path="",
            created_at=created_at or utcnow() + timedelta(microseconds=self._next_order_id),
            deleted_at=utcnow() if deleted else None,
        )
        self._next_order_id += 1
        order.company = self.companies.get(company_id)
        order.items = [self._new_item(product_id, Decimal(quantity), self.products[product_id].unit_price)
                       for product_id, quantity in items]
        order.total_value = order_total(item.subtotal for item in order.items)
        self.orders[order.id] = order
        return order

    def _new_item(self, product_id, quantity, unit_price):
        item = OrderItem(
            id=self._next_item_id,
            product_id=product_id,
            quantity=quantity,
            unit_price=Decimal(unit_price),
            subtotal=line_subtotal(quantity, unit_price),
        )
        item.product = self.products.get(product_id)
        self.items[item.id] = item
        self._next_item_id += 1
        return item

    # --- transaction ---

    def _snapshot(self):
        return (
            dict(self.orders),
            {oid: {c: getattr(o, c) for c in ORDER_COLUMNS} for oid, o in self.orders.items()},
            dict(self.items),
            {iid: {c: getattr(i, c) for c in ITEM_COLUMNS} for iid, i in self.items.items()},
        )

    def _restore(self, snapshot):
        orders, order_values, items, item_values = snapshot
        self.orders = orders
        self.items = items
        for oid, values in order_values.items():
            for column, value in values.items():
                setattr(self.orders[oid], column, value)
        for iid, values in item_values.items():
            for column, value in values.items():
                setattr(self.items[iid], column, value)

    @asynccontextmanager
    async def transaction(self):
        snapshot = self._snapshot()
        try:
            yield
        except Exception:
            self._restore(snapshot)
            self.rollbacks += 1
            raise
        else:
            self.commits += 1

    # --- reads ---

    async def find_company(self, company_id):
        company = self.companies.get(company_id)
        if company is None or company.deleted_at is not None:
            return None
        return company

    async def find_products_by_ids(self, product_ids):
        return [
            self.products[pid] for pid in product_ids
            if pid in self.products and self.products[pid].deleted_at is None
        ]

    async def find_order(self, order_id):
        order = self.orders.get(order_id)
        if order is None or order.deleted_at is not None:
            return None
        return order

    def _matching(self, f):
        self.last_filter = f
        result = []
        for order in self.orders.values():
            if order.deleted_at is not None:
                continue
            if f.company_id is not None and order.company_id != f.company_id:
                continue
            if f.status is not None and order.status != f.status.value:
                continue
            if f.statuses and order.status not in [s.value for s in f.statuses]:
                continue
            if f.start_date is not None and order.created_at.date() < f.start_date:
                continue
            if f.end_date is not None and order.created_at.date() > f.end_date:
                continue
            if f.created_from is not None and order.created_at < f.created_from:
                continue
            result.append(order)
        return sorted(result, key=lambda o: (o.created_at, o.id), reverse=True)

    async def find_orders(self, order_filter, offset=0, limit=None):
        matching = self._matching(order_filter)[offset:]
        return matching if limit is None else matching[:limit]

    async def count_orders(self, order_filter):
        return len(self._matching(order_filter))

    async def sum_order_values(self, order_filter):
        return order_total(o.total_value for o in self._matching(order_filter))

    async def count_orders_by_status(self, order_filter):
        return dict(Counter(o.status for o in self._matching(order_filter)))

    # --- writes ---

    async def create_order_with_items(self, order_in):
        order = Order(
            id=self._next_order_id,
            company_id=order_in.company_id,
            created_by=order_in.created_by,
            status=order_in.status.value,
            total_value=order_in.total_value,
            pdf_path="",
            created_at=utcnow(),
        )
        self._next_order_id += 1
        order.company = self.companies.get(order_in.company_id)
        order.items = []
        for line in order_in.items:
            item = self._new_item(line.product_id, line.quantity, line.unit_price)
            item.subtotal = line.subtotal
            order.items.append(item)
        self.orders[order.id] = order
        return order

    async def update_order(self, order_id, patch):
        order = await self.find_order(order_id)
        if order is None:
            return None
        for field, value in patch.items():
            setattr(order, field, value.value if isinstance(value, Enum) else value)
        order.updated_at = utcnow()
        return order

    async def update_order_item(self, item_id, patch):
        item = self.items.get(item_id)
        if item is None:
            return None
        for field, value in patch.items():
            setattr(item, field, value)
        return item


class FakePdfGenerator:
    def __init__(self, fail=False):
        self.fail = fail
        self.generated = []
        self.discarded = []
        self.reports = []

    async def generate_order_pdf(self, order):
        if self.fail:
            raise OSError("No space left on device")
        self.generated.append(order.id)
        return PdfArtifact(
            path=f"uploads/pdfs/pedido-{order.id}.pdf",
            url=f"https://files.padaria.test/pedido-{order.id}.pdf",
        )

    async def discard(self, artifact):
        self.discarded.append(artifact.path)

    async def render_report(self, report):
        self.reports.append(report)
        return b"%PDF-1.4 fake report"


class FakeEventPublisher:
    def __init__(self, fail=False):
        self.fail = fail
        self.events = []

    async def emit(self, event_type, payload):
        if self.fail:
            raise ConnectionError("RabbitMQ unavailable")
        self.events.append((event_type, payload))


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def repo():
    repo = FakeOrderRepository()
    repo.add_company(5, email="compras@cafe-aurora.test", trade_name="Café Aurora")
    repo.add_company(9, email="pedidos@hotel-sol.test", trade_name="Hotel Sol")
    repo.add_product(1, "Pão francês", "0.50")
    repo.add_product(2, "Bolo de cenoura", "35.00")
    repo.add_product(3, "Croissant", "4.90", deleted=True)
    return repo


@pytest.fixture
def pdf():
    return FakePdfGenerator()


@pytest.fixture
def events():
    return FakeEventPublisher()


@pytest.fixture
def service(repo, pdf, events):
    return OrderService(repo, pdf, events, staff_email=STAFF_EMAIL)


@pytest.fixture
def staff():
    return TenantContext(user_id=1)


@pytest.fixture
def client_5():
    return TenantContext(user_id=50, tenant_id=5)


@pytest.fixture
def client_9():
    return TenantContext(user_id=90, tenant_id=9)
