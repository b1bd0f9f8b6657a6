import io
import logging
from datetime import date
from typing import Optional

import uvicorn
from fastapi import Depends, FastAPI, Query, Request
from fastapi.responses import FileResponse, JSONResponse, StreamingResponse
from sqlalchemy.ext.asyncio import AsyncSession

from bakery_orders import schemas
from bakery_orders.auth import get_tenant, require_permission
from bakery_orders.config import settings
from bakery_orders.db import create_tables, get_session
from bakery_orders.errors import DomainError
from bakery_orders.messaging import RabbitEventPublisher, close_rabbit, init_rabbit
from bakery_orders.pdf import OrderPdfGenerator
from bakery_orders.repository import SqlOrderRepository
from bakery_orders.roles import build_permission_table
from bakery_orders.service import OrderService
from bakery_orders.tenant import TenantContext
from bakery_orders.transitions import OrderStatus

logger = logging.getLogger(__name__)
app = FastAPI(title="Bakery Orders Service")


@app.on_event("startup")
async def startup_event():
    await create_tables()

    await init_rabbit()

    app.state.permission_table = build_permission_table(settings.ROLE_PERMISSIONS)

@app.on_event("shutdown")
async def shutdown_event():
    await close_rabbit()


@app.exception_handler(DomainError)
async def domain_error_handler(request: Request, exc: DomainError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


async def get_order_service(
    session: AsyncSession = Depends(get_session)
) -> OrderService:
    return OrderService(
        SqlOrderRepository(session),
        OrderPdfGenerator(),
        RabbitEventPublisher(),
        staff_email=settings.STAFF_NOTIFICATION_EMAIL,
        default_page_size=settings.DEFAULT_PAGE_SIZE,
        max_page_size=settings.MAX_PAGE_SIZE,
    )


@app.get("/health")
async def health():
    return {"status": "ok"}


@app.post(
    "/orders",
    response_model=schemas.OrderRead,
    status_code=201,
    dependencies=[Depends(require_permission("pedidos:criar"))],
)
async def create_order(
    order_in: schemas.OrderCreateRequest,
    tenant: TenantContext = Depends(get_tenant),
    service: OrderService = Depends(get_order_service)
):
    return await service.create(order_in.company_id, order_in.items, tenant)

@app.get(
    "/orders",
    response_model=schemas.OrderPage,
    dependencies=[Depends(require_permission("pedidos:listar"))],
)
async def list_orders(
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    company_id: Optional[int] = Query(None),
    status: Optional[OrderStatus] = Query(None),
    page: int = Query(1, ge=1),
    limit: Optional[int] = Query(None, ge=1),
    tenant: TenantContext = Depends(get_tenant),
    service: OrderService = Depends(get_order_service)
):
    order_filter = schemas.OrderFilter(
        start_date=start_date,
        end_date=end_date,
        company_id=company_id,
        status=status,
        page=page,
        limit=limit,
    )
    return await service.find_all(order_filter, tenant)

# static paths go before /orders/{order_id}
@app.get(
    "/orders/dashboard",
    response_model=schemas.DashboardRead,
    dependencies=[Depends(require_permission("pedidos:listar"))],
)
async def orders_dashboard(
    tenant: TenantContext = Depends(get_tenant),
    service: OrderService = Depends(get_order_service)
):
    return await service.dashboard(tenant)

@app.get(
    "/orders/reports/summary",
    response_model=schemas.ReportRead,
    dependencies=[Depends(require_permission("relatorios:ver"))],
)
async def orders_report(
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    company_id: Optional[int] = Query(None),
    tenant: TenantContext = Depends(get_tenant),
    service: OrderService = Depends(get_order_service)
):
    request = schemas.ReportRequest(start_date=start_date, end_date=end_date, company_id=company_id)
    return await service.report(request, tenant)

@app.get(
    "/orders/reports/pdf",
    response_class=StreamingResponse,
    dependencies=[Depends(require_permission("relatorios:exportar"))],
)
async def orders_report_pdf(
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    company_id: Optional[int] = Query(None),
    tenant: TenantContext = Depends(get_tenant),
    service: OrderService = Depends(get_order_service)
):
    request = schemas.ReportRequest(start_date=start_date, end_date=end_date, company_id=company_id)
    content = await service.report_pdf(request, tenant)
    return StreamingResponse(
        io.BytesIO(content),
        media_type="application/pdf",
        headers={
            "Content-Disposition": f'attachment; filename="relatorio-{start_date}-{end_date}.pdf"'
        }
    )

@app.get(
    "/orders/{order_id}",
    response_model=schemas.OrderRead,
    dependencies=[Depends(require_permission("pedidos:ver"))],
)
async def get_order(
    order_id: int,
    tenant: TenantContext = Depends(get_tenant),
    service: OrderService = Depends(get_order_service)
):
    return await service.find_one(order_id, tenant)

@app.patch(
    "/orders/{order_id}/status",
    response_model=schemas.OrderRead,
    dependencies=[Depends(require_permission("pedidos:editar"))],
)
async def update_order_status(
    order_id: int,
    body: schemas.StatusUpdateRequest,
    tenant: TenantContext = Depends(get_tenant),
    service: OrderService = Depends(get_order_service)
):
    return await service.update_status(order_id, body.status, tenant)

@app.patch(
    "/orders/{order_id}/items/{item_id}",
    response_model=schemas.OrderRead,
    dependencies=[Depends(require_permission("pedidos:editar"))],
)
async def update_order_item(
    order_id: int,
    item_id: int,
    body: schemas.ItemQuantityUpdateRequest,
    tenant: TenantContext = Depends(get_tenant),
    service: OrderService = Depends(get_order_service)
):
    return await service.update_item_quantity(order_id, item_id, body.quantity, tenant)

@app.delete(
    "/orders/{order_id}",
    response_model=schemas.OrderRead,
    dependencies=[Depends(require_permission("pedidos:cancelar"))],
)
async def remove_order(
    order_id: int,
    tenant: TenantContext = Depends(get_tenant),
    service: OrderService = Depends(get_order_service)
):
    return await service.remove(order_id, tenant)

@app.post(
    "/orders/{order_id}/repeat",
    response_model=schemas.OrderRead,
    status_code=201,
    dependencies=[Depends(require_permission("pedidos:criar"))],
)
async def repeat_order(
    order_id: int,
    tenant: TenantContext = Depends(get_tenant),
    service: OrderService = Depends(get_order_service)
):
    return await service.repeat(order_id, tenant)

@app.get(
    "/orders/{order_id}/pdf",
    response_class=FileResponse,
    dependencies=[Depends(require_permission("pedidos:ver"))],
)
async def download_order_pdf(
    order_id: int,
    tenant: TenantContext = Depends(get_tenant),
    service: OrderService = Depends(get_order_service)
):
    path = await service.document_path(order_id, tenant)
    return FileResponse(path, media_type="application/pdf", filename=path.name)

@app.post(
    "/orders/{order_id}/pdf",
    response_model=schemas.OrderRead,
    dependencies=[Depends(require_permission("pedidos:ver"))],
)
async def regenerate_order_pdf(
    order_id: int,
    tenant: TenantContext = Depends(get_tenant),
    service: OrderService = Depends(get_order_service)
):
    return await service.regenerate_pdf(order_id, tenant)


if __name__ == "__main__":
    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    uvicorn.run("bakery_orders.main:app", host="0.0.0.0", port=8000)
