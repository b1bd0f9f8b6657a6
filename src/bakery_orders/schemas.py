from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, List
from datetime import date, datetime
from decimal import Decimal

from bakery_orders.roles import RoleCode, RoleType
from bakery_orders.transitions import OrderStatus


class OrderItemRequest(BaseModel):
    product_id: int = Field(..., description="ID of the product")
    quantity: Decimal = Field(..., description="Quantity, may be fractional for weight-based products")

class OrderCreateRequest(BaseModel):
    company_id: Optional[int] = Field(None, description="Owning company; ignored for client users")
    items: List[OrderItemRequest]

class StatusUpdateRequest(BaseModel):
    status: OrderStatus

class ItemQuantityUpdateRequest(BaseModel):
    quantity: Decimal


class OrderItemCreate(BaseModel):
    product_id: int
    quantity: Decimal
    unit_price: Decimal
    subtotal: Decimal

class OrderCreate(BaseModel):
    company_id: int
    created_by: Optional[int]
    status: OrderStatus = OrderStatus.PENDENTE
    total_value: Decimal
    items: List[OrderItemCreate]


class OrderItemRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    product_id: int
    quantity: Decimal
    unit_price: Decimal
    subtotal: Decimal

class OrderRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    company_id: int
    created_by: Optional[int]
    status: OrderStatus
    total_value: Decimal
    pdf_path: Optional[str]
    pdf_url: Optional[str]
    items: List[OrderItemRead]
    created_at: Optional[datetime]
    updated_at: Optional[datetime]
    deleted_at: Optional[datetime]


class OrderFilter(BaseModel):
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    company_id: Optional[int] = None
    status: Optional[OrderStatus] = None
    statuses: Optional[List[OrderStatus]] = None
    created_from: Optional[datetime] = None
    page: int = Field(1, ge=1)
    limit: Optional[int] = Field(None, ge=1)

class PageMeta(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int

class OrderPage(BaseModel):
    data: List[OrderRead]
    meta: PageMeta


class StatusChangedEvent(BaseModel):
    order_id: int
    company_id: int
    previous_status: OrderStatus
    new_status: OrderStatus
    changed_by: int
    recipient_email: Optional[str]
    recipient_type: RoleType


class PdfArtifact(BaseModel):
    path: str
    url: Optional[str] = None


class DashboardSummary(BaseModel):
    total_orders: int
    orders_this_month: int
    value_this_month: Decimal
    pending_orders: int

class DashboardStatusCount(BaseModel):
    status: OrderStatus
    count: int
    percentage: float

class DashboardRecentOrder(BaseModel):
    id: int
    created_at: Optional[datetime]
    status: OrderStatus
    total_value: Decimal
    item_count: int

class DashboardRead(BaseModel):
    summary: DashboardSummary
    by_status: List[DashboardStatusCount]
    recent_orders: List[DashboardRecentOrder]


class ReportRequest(BaseModel):
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    company_id: Optional[int] = None

class ReportSummary(BaseModel):
    total_orders: int
    total_value: Decimal
    average_ticket: Decimal

class ReportRow(BaseModel):
    order_id: int
    company_id: int
    created_at: Optional[datetime]
    status: OrderStatus
    item_count: int
    total_value: Decimal

class ReportRead(BaseModel):
    start_date: date
    end_date: date
    company_id: Optional[int]
    summary: ReportSummary
    rows: List[ReportRow]
    notes: Optional[str] = None


class RoleClaim(BaseModel):
    code: RoleCode
    type: RoleType

class AuthenticatedUser(BaseModel):
    id: int
    email: str
    name: str = ""
    role: RoleClaim
    company_id: Optional[int] = None
