import pytest

from bakery_orders.errors import ForbiddenError
from bakery_orders.schemas import OrderFilter
from bakery_orders.transitions import OrderStatus

pytestmark = pytest.mark.asyncio


@pytest.fixture
def two_tenants(repo):
    return repo.add_order(5), repo.add_order(9)


class TestTenantIsolation:

    async def test_client_lists_only_own_orders(self, service, repo, client_5, two_tenants):
        order_5, _ = two_tenants

        page = await service.find_all(OrderFilter(), client_5)

        assert [o.id for o in page.data] == [order_5.id]
        assert repo.last_filter.company_id == 5

    async def test_client_filter_on_other_company_is_overridden(self, service, repo, client_5, two_tenants):
        order_5, _ = two_tenants

        page = await service.find_all(OrderFilter(company_id=9), client_5)

        assert [o.id for o in page.data] == [order_5.id]
        assert repo.last_filter.company_id == 5

    async def test_internal_sees_everything(self, service, staff, two_tenants):
        page = await service.find_all(OrderFilter(), staff)
        assert {o.company_id for o in page.data} == {5, 9}

    async def test_internal_may_filter_by_company(self, service, staff, two_tenants):
        _, order_9 = two_tenants
        page = await service.find_all(OrderFilter(company_id=9), staff)
        assert [o.id for o in page.data] == [order_9.id]

    async def test_find_one_foreign_order_denied(self, service, client_5, two_tenants):
        _, order_9 = two_tenants
        with pytest.raises(ForbiddenError, match="Access denied to this order"):
            await service.find_one(order_9.id, client_5)

    async def test_update_status_foreign_order_denied(self, service, repo, client_5, two_tenants):
        _, order_9 = two_tenants
        with pytest.raises(ForbiddenError, match="Access denied to this order"):
            await service.update_status(order_9.id, OrderStatus.CANCELADO, client_5)
        assert repo.orders[order_9.id].status == OrderStatus.PENDENTE.value

    async def test_find_one_own_order(self, service, client_9, two_tenants):
        _, order_9 = two_tenants
        order = await service.find_one(order_9.id, client_9)
        assert order is order_9


class TestPagination:

    async def test_default_page_size(self, service, repo, staff):
        for _ in range(12):
            repo.add_order(5)

        page = await service.find_all(OrderFilter(), staff)

        assert len(page.data) == 10
        assert page.meta.model_dump() == {"page": 1, "limit": 10, "total": 12, "total_pages": 2}

    async def test_second_page(self, service, repo, staff):
        orders = [repo.add_order(5) for _ in range(12)]

        page = await service.find_all(OrderFilter(page=2, limit=5), staff)

        # newest first
        assert [o.id for o in page.data] == [o.id for o in reversed(orders)][5:10]
        assert page.meta.total_pages == 3

    async def test_limit_capped(self, service, repo, staff):
        repo.add_order(5)
        page = await service.find_all(OrderFilter(limit=1000), staff)
        assert page.meta.limit == 100

    async def test_empty(self, service, staff):
        page = await service.find_all(OrderFilter(), staff)
        assert page.data == []
        assert page.meta.total == 0
        assert page.meta.total_pages == 0

    async def test_status_filter(self, service, repo, staff):
        repo.add_order(5, status=OrderStatus.PENDENTE)
        ready = repo.add_order(5, status=OrderStatus.PRONTO)

        page = await service.find_all(OrderFilter(status=OrderStatus.PRONTO), staff)

        assert [o.id for o in page.data] == [ready.id]
