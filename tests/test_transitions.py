import pytest

from bakery_orders.errors import BadRequestError, ForbiddenError
from bakery_orders.roles import RoleType
from bakery_orders.transitions import (
    EDITABLE_STATUSES,
    TERMINAL_STATUSES,
    VALID_TRANSITIONS,
    OrderStatus,
    allowed_targets,
    apply_transition,
    decide_transition,
    is_valid_transition,
)

S = OrderStatus

TABLE_EDGES = [
    (current, requested)
    for current, targets in VALID_TRANSITIONS.items()
    for requested in targets
]

NON_EDGES = [
    (current, requested)
    for current in OrderStatus
    for requested in OrderStatus
    if requested not in VALID_TRANSITIONS[current] and current not in TERMINAL_STATUSES
]


class TestTable:

    def test_main_flow(self):
        flow = [S.RASCUNHO, S.PENDENTE, S.CONFIRMADO, S.EM_PRODUCAO, S.PRONTO, S.ENTREGUE]
        for current, requested in zip(flow, flow[1:]):
            assert is_valid_transition(current, requested)

    @pytest.mark.parametrize("status", [S.PENDENTE, S.CONFIRMADO, S.EM_PRODUCAO, S.PRONTO])
    def test_cancel_reachable_before_delivery(self, status):
        assert is_valid_transition(status, S.CANCELADO)

    def test_draft_cannot_be_cancelled(self):
        assert not is_valid_transition(S.RASCUNHO, S.CANCELADO)

    def test_terminal_statuses_have_no_edges(self):
        assert TERMINAL_STATUSES == {S.ENTREGUE, S.CANCELADO}
        for status in TERMINAL_STATUSES:
            assert VALID_TRANSITIONS[status] == frozenset()

    def test_editable_statuses(self):
        assert EDITABLE_STATUSES == {S.RASCUNHO, S.PENDENTE}

    def test_accepts_raw_strings(self):
        assert is_valid_transition("PENDENTE", "CONFIRMADO")


class TestDecideTransition:

    @pytest.mark.parametrize("current,requested", TABLE_EDGES)
    def test_internal_may_take_every_edge(self, current, requested):
        decision = decide_transition(current, requested, RoleType.INTERNAL)
        assert decision.allowed
        assert decision.new_status == requested

    @pytest.mark.parametrize("current,requested", NON_EDGES)
    @pytest.mark.parametrize("role", list(RoleType))
    def test_missing_edge_is_bad_request_for_everyone(self, current, requested, role):
        decision = decide_transition(current, requested, role)
        assert not decision.allowed
        assert isinstance(decision.error, BadRequestError)
        assert decision.error.detail == f"Invalid transition: {current.value} → {requested.value}"

    @pytest.mark.parametrize("current", list(TERMINAL_STATUSES))
    @pytest.mark.parametrize("requested", list(OrderStatus))
    def test_terminal_status_rejects_everything(self, current, requested):
        decision = decide_transition(current, requested, RoleType.INTERNAL)
        assert isinstance(decision.error, BadRequestError)
        assert "final status" in decision.error.detail

    @pytest.mark.parametrize("current", [S.PENDENTE, S.CONFIRMADO, S.EM_PRODUCAO, S.PRONTO])
    def test_client_may_cancel(self, current):
        decision = decide_transition(current, S.CANCELADO, RoleType.CLIENT)
        assert decision.allowed
        assert decision.new_status == S.CANCELADO

    @pytest.mark.parametrize("current,requested", [
        (c, r) for c, r in TABLE_EDGES if r != S.CANCELADO
    ])
    def test_client_blocked_on_other_edges(self, current, requested):
        decision = decide_transition(current, requested, RoleType.CLIENT)
        assert isinstance(decision.error, ForbiddenError)
        assert decision.error.detail == (
            f"Role CLIENT cannot perform transition {current.value} → {requested.value}"
        )

    def test_edge_check_runs_before_role_check(self):
        decision = decide_transition(S.RASCUNHO, S.PRONTO, RoleType.CLIENT)
        assert isinstance(decision.error, BadRequestError)
        assert decision.error.detail == "Invalid transition: RASCUNHO → PRONTO"


class TestApplyTransition:

    def test_returns_new_status(self):
        assert apply_transition(S.CONFIRMADO, S.EM_PRODUCAO, RoleType.INTERNAL) == S.EM_PRODUCAO

    def test_raises_forbidden_for_client(self):
        with pytest.raises(ForbiddenError, match="Role CLIENT cannot perform transition CONFIRMADO → EM_PRODUCAO"):
            apply_transition(S.CONFIRMADO, S.EM_PRODUCAO, RoleType.CLIENT)

    def test_raises_bad_request_from_delivered(self):
        with pytest.raises(BadRequestError):
            apply_transition(S.ENTREGUE, S.CANCELADO, RoleType.INTERNAL)


class TestAllowedTargets:

    def test_internal(self):
        assert allowed_targets(S.PENDENTE, RoleType.INTERNAL) == {S.CONFIRMADO, S.CANCELADO}

    def test_client(self):
        assert allowed_targets(S.PENDENTE, RoleType.CLIENT) == {S.CANCELADO}
        assert allowed_targets(S.RASCUNHO, RoleType.CLIENT) == frozenset()

    def test_terminal(self):
        assert allowed_targets(S.CANCELADO, RoleType.INTERNAL) == frozenset()
