import logging
import math
from pathlib import Path
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Optional, Sequence

from bakery_orders.errors import BadRequestError, DomainError, ForbiddenError, NotFoundError
from bakery_orders.messaging import EVENT_STATUS_CHANGED
from bakery_orders.models import Order, utcnow
from bakery_orders.roles import RoleType
from bakery_orders.schemas import (
    DashboardRead,
    DashboardRecentOrder,
    DashboardStatusCount,
    DashboardSummary,
    OrderCreate,
    OrderFilter,
    OrderItemCreate,
    OrderItemRequest,
    OrderPage,
    OrderRead,
    PageMeta,
    ReportRead,
    ReportRequest,
    ReportRow,
    ReportSummary,
    StatusChangedEvent,
)
from bakery_orders.tenant import TenantContext
from bakery_orders.transitions import EDITABLE_STATUSES, OrderStatus, apply_transition

logger = logging.getLogger("orders.service")

CENT = Decimal("0.01")
# scales of OrderItem.quantity Numeric(10, 3) and Order.total_value Numeric(12, 2)
QUANTITY_STEP = Decimal("0.001")
MAX_QUANTITY = Decimal("9999999.999")
MAX_ORDER_VALUE = Decimal("9999999999.99")
PENDING_STATUSES = (OrderStatus.RASCUNHO, OrderStatus.PENDENTE)
RECENT_ORDERS_LIMIT = 5


def line_subtotal(quantity, unit_price) -> Decimal:
    return (Decimal(quantity) * Decimal(unit_price)).quantize(CENT, rounding=ROUND_HALF_UP)

def order_total(subtotals: Iterable) -> Decimal:
    return sum((Decimal(s) for s in subtotals), Decimal("0.00")).quantize(CENT)

def normalize_quantity(quantity, label: str = "Quantity") -> Decimal:
    """
    Rounds to the stored quantity scale, so subtotals are computed from the
    value that is actually persisted.
    """
    quantity = Decimal(quantity)
    if quantity > MAX_QUANTITY:
        raise BadRequestError(f"{label} must not exceed {MAX_QUANTITY}")
    quantity = quantity.quantize(QUANTITY_STEP, rounding=ROUND_HALF_UP)
    if quantity <= 0:
        raise BadRequestError(f"{label} must be greater than zero")
    return quantity

def check_order_total(total: Decimal) -> Decimal:
    if total > MAX_ORDER_VALUE:
        raise BadRequestError(f"Order total must not exceed {MAX_ORDER_VALUE}")
    return total


class OrderService:
    """
    Order operations scoped by the caller's TenantContext.

    Collaborators:
        repository -- persistence (see SqlOrderRepository)
        pdf        -- object with `async generate_order_pdf(order) -> PdfArtifact`,
                      `async discard(artifact)` and `async render_report(report) -> bytes`
        events     -- object with `async emit(event_type, payload)`
    """

    def __init__(
        self,
        repository,
        pdf,
        events,
        staff_email: Optional[str] = None,
        default_page_size: int = 10,
        max_page_size: int = 100,
    ):
        self.repository = repository
        self.pdf = pdf
        self.events = events
        self.staff_email = staff_email or None
        self.default_page_size = default_page_size
        self.max_page_size = max_page_size

    # --- creation ---

    async def create(
        self,
        company_id: Optional[int],
        items: Sequence[OrderItemRequest],
        tenant: TenantContext,
    ) -> Order:
        """
        Creates an order in PENDENTE with prices taken from the current
        products, then renders its PDF. Order, items and PDF reference are
        committed together; a PDF failure fails the whole creation.
        """
        if not tenant.is_internal:
            # client users always order for their own company
            company_id = tenant.tenant_id
        if company_id is None:
            raise BadRequestError("company_id is required")
        if not items:
            raise BadRequestError("Order must have at least one item")
        quantities = [
            normalize_quantity(item.quantity, f"Quantity of product {item.product_id}")
            for item in items
        ]

        company = await self.repository.find_company(company_id)
        if company is None:
            raise NotFoundError(f"Company {company_id} not found")

        product_ids = list(dict.fromkeys(item.product_id for item in items))
        products = {p.id: p for p in await self.repository.find_products_by_ids(product_ids)}
        lines = []
        for item, quantity in zip(items, quantities):
            product = products.get(item.product_id)
            if product is None:
                raise NotFoundError(f"Product {item.product_id} not found")
            lines.append(OrderItemCreate(
                product_id=product.id,
                quantity=quantity,
                unit_price=Decimal(product.unit_price),
                subtotal=line_subtotal(quantity, product.unit_price),
            ))

        order_in = OrderCreate(
            company_id=company_id,
            created_by=tenant.user_id,
            status=OrderStatus.PENDENTE,
            total_value=check_order_total(order_total(line.subtotal for line in lines)),
            items=lines,
        )

        artifact = None
        try:
            async with self.repository.transaction():
                order = await self.repository.create_order_with_items(order_in)
                artifact = await self.pdf.generate_order_pdf(order)
                order = await self.repository.update_order(
                    order.id, {"pdf_path": artifact.path, "pdf_url": artifact.url}
                )
        except Exception:
            # the order row is gone, so is its document
            if artifact is not None:
                await self.pdf.discard(artifact)
            raise

        logger.info("[Orders] Order %s created for company %s by user %s, total %s",
                    order.id, company_id, tenant.user_id, order_in.total_value)
        return order

    async def repeat(self, order_id: int, tenant: TenantContext) -> Order:
        """
        Places a new order with the same company, products and quantities.
        Prices come from the current products, not from the original order.
        """
        original = await self.find_one(order_id, tenant)
        items = [
            OrderItemRequest(product_id=item.product_id, quantity=item.quantity)
            for item in original.items
        ]
        order = await self.create(original.company_id, items, tenant)
        logger.info("[Orders] Order %s repeated as order %s", original.id, order.id)
        return order

    # --- reads ---

    def _scoped(self, order_filter: OrderFilter, tenant: TenantContext) -> OrderFilter:
        if tenant.is_internal:
            return order_filter
        return order_filter.model_copy(update={"company_id": tenant.tenant_id})

    async def find_all(self, order_filter: OrderFilter, tenant: TenantContext) -> OrderPage:
        order_filter = self._scoped(order_filter, tenant)
        limit = min(order_filter.limit or self.default_page_size, self.max_page_size)
        page = order_filter.page

        total = await self.repository.count_orders(order_filter)
        orders = await self.repository.find_orders(order_filter, offset=(page - 1) * limit, limit=limit)

        return OrderPage(
            data=[OrderRead.model_validate(order) for order in orders],
            meta=PageMeta(page=page, limit=limit, total=total, total_pages=math.ceil(total / limit)),
        )

    async def find_one(self, order_id: int, tenant: TenantContext) -> Order:
        order = await self.repository.find_order(order_id)
        if order is None:
            raise NotFoundError(f"Order {order_id} not found")
        if not tenant.owns(order.company_id):
            logger.warning("[Orders] User %s of company %s denied access to order %s",
                           tenant.user_id, tenant.tenant_id, order_id)
            raise ForbiddenError("Access denied to this order")
        return order

    # --- status ---

    async def update_status(
        self,
        order_id: int,
        requested: OrderStatus,
        tenant: TenantContext,
    ) -> Order:
        order = await self.find_one(order_id, tenant)
        previous = OrderStatus(order.status)
        try:
            new_status = apply_transition(previous, requested, tenant.role_type)
        except DomainError as e:
            logger.info("[Orders] Order %s: %s", order_id, e.detail)
            raise

        order = await self.repository.update_order(order.id, {"status": new_status})
        logger.info("[Orders] Order %s status %s -> %s by user %s",
                    order.id, previous.value, new_status.value, tenant.user_id)
        await self._notify_status_changed(order, previous, new_status, tenant)
        return order

    async def _notify_status_changed(
        self,
        order: Order,
        previous: OrderStatus,
        new_status: OrderStatus,
        tenant: TenantContext,
    ) -> None:
        if tenant.is_internal:
            # staff moved the order, tell the company
            company = order.company
            recipient_type = RoleType.CLIENT
            recipient_email = company.email if company is not None and company.notify_by_email else None
        else:
            recipient_type = RoleType.INTERNAL
            recipient_email = self.staff_email

        event = StatusChangedEvent(
            order_id=order.id,
            company_id=order.company_id,
            previous_status=previous,
            new_status=new_status,
            changed_by=tenant.user_id,
            recipient_email=recipient_email,
            recipient_type=recipient_type,
        )
        try:
            await self.events.emit(EVENT_STATUS_CHANGED, event.model_dump(mode="json"))
        except Exception:
            logger.exception("[Orders] Could not emit %s for order %s", EVENT_STATUS_CHANGED, order.id)

    # --- edits ---

    async def remove(self, order_id: int, tenant: TenantContext) -> Order:
        """
        Soft delete. Always ends in CANCELADO, whatever the current status:
        an administrative override that does not go through the state machine.
        """
        order = await self.find_one(order_id, tenant)
        previous = order.status
        order = await self.repository.update_order(
            order.id, {"deleted_at": utcnow(), "status": OrderStatus.CANCELADO}
        )
        logger.info("[Orders] Order %s removed by user %s (was %s)", order.id, tenant.user_id, previous)
        return order

    async def update_item_quantity(
        self,
        order_id: int,
        item_id: int,
        quantity,
        tenant: TenantContext,
    ) -> Order:
        order = await self.find_one(order_id, tenant)
        if OrderStatus(order.status) not in EDITABLE_STATUSES:
            raise BadRequestError(f"Order {order_id} cannot be edited in status {order.status}")

        quantity = normalize_quantity(quantity)

        item = next((i for i in order.items if i.id == item_id), None)
        if item is None:
            raise NotFoundError(f"Item {item_id} not found in order {order_id}")

        subtotal = line_subtotal(quantity, item.unit_price)
        total = check_order_total(order_total(subtotal if i.id == item.id else i.subtotal for i in order.items))

        async with self.repository.transaction():
            await self.repository.update_order_item(item.id, {"quantity": quantity, "subtotal": subtotal})
            order = await self.repository.update_order(order.id, {"total_value": total})

        logger.info("[Orders] Order %s item %s quantity set to %s, total %s", order_id, item_id, quantity, total)
        return order

    async def regenerate_pdf(self, order_id: int, tenant: TenantContext) -> Order:
        order = await self.find_one(order_id, tenant)
        artifact = await self.pdf.generate_order_pdf(order)
        return await self.repository.update_order(
            order.id, {"pdf_path": artifact.path, "pdf_url": artifact.url}
        )

    async def document_path(self, order_id: int, tenant: TenantContext) -> Path:
        """Local file of the order's stored document."""
        order = await self.find_one(order_id, tenant)
        path = Path(order.pdf_path) if order.pdf_path else None
        if path is None or not path.is_file():
            raise NotFoundError(f"Document of order {order_id} not found")
        return path

    # --- dashboard & reports ---

    async def dashboard(self, tenant: TenantContext) -> DashboardRead:
        scope = self._scoped(OrderFilter(), tenant)
        month_start = utcnow().replace(day=1, hour=0, minute=0, second=0, microsecond=0)
        this_month = scope.model_copy(update={"created_from": month_start})
        pending = scope.model_copy(update={"statuses": list(PENDING_STATUSES)})

        total = await self.repository.count_orders(scope)
        summary = DashboardSummary(
            total_orders=total,
            orders_this_month=await self.repository.count_orders(this_month),
            value_this_month=await self.repository.sum_order_values(this_month) or Decimal("0.00"),
            pending_orders=await self.repository.count_orders(pending),
        )

        counts = await self.repository.count_orders_by_status(scope)
        by_status = [
            DashboardStatusCount(
                status=status,
                count=counts[status.value],
                percentage=round(counts[status.value] * 100 / total, 2) if total else 0.0,
            )
            # lifecycle order, not query order
            for status in OrderStatus
            if counts.get(status.value)
        ]

        recent = await self.repository.find_orders(scope, offset=0, limit=RECENT_ORDERS_LIMIT)
        recent_orders = [
            DashboardRecentOrder(
                id=order.id,
                created_at=order.created_at,
                status=order.status,
                total_value=order.total_value,
                item_count=len(order.items),
            )
            for order in recent
        ]
        return DashboardRead(summary=summary, by_status=by_status, recent_orders=recent_orders)

    async def report(self, request: ReportRequest, tenant: TenantContext) -> ReportRead:
        if request.start_date is None or request.end_date is None:
            raise BadRequestError("start_date and end_date are required")
        if request.start_date > request.end_date:
            raise BadRequestError("start_date must not be after end_date")

        company_id = request.company_id if tenant.is_internal else tenant.tenant_id
        orders = await self.repository.find_orders(
            OrderFilter(start_date=request.start_date, end_date=request.end_date, company_id=company_id)
        )

        total_value = order_total(order.total_value for order in orders)
        average = (total_value / len(orders)).quantize(CENT, rounding=ROUND_HALF_UP) if orders else Decimal("0.00")
        rows = [
            ReportRow(
                order_id=order.id,
                company_id=order.company_id,
                created_at=order.created_at,
                status=order.status,
                item_count=len(order.items),
                total_value=order.total_value,
            )
            for order in orders
        ]
        return ReportRead(
            start_date=request.start_date,
            end_date=request.end_date,
            company_id=company_id,
            summary=ReportSummary(total_orders=len(orders), total_value=total_value, average_ticket=average),
            rows=rows,
            notes=None if orders else "No orders found for the selected period",
        )

    async def report_pdf(self, request: ReportRequest, tenant: TenantContext) -> bytes:
        report = await self.report(request, tenant)
        content = await self.pdf.render_report(report)
        logger.info("[Orders] Report %s..%s exported by user %s (%s orders)",
                    report.start_date, report.end_date, tenant.user_id, report.summary.total_orders)
        return content
