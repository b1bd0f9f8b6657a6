"""
Order status state machine.

Main flow:
    RASCUNHO -> PENDENTE -> CONFIRMADO -> EM_PRODUCAO -> PRONTO -> ENTREGUE

CANCELADO is reachable from PENDENTE, CONFIRMADO, EM_PRODUCAO and PRONTO.
ENTREGUE and CANCELADO are terminal.

Client-company callers may only take edges that end in CANCELADO; bakery
staff may take any edge of the table. Everything here is pure: the decision
is computed from the table, nothing is read from the database.
"""
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Mapping

from bakery_orders.errors import BadRequestError, DomainError, ForbiddenError
from bakery_orders.roles import RoleType


class OrderStatus(str, Enum):
    RASCUNHO = "RASCUNHO"
    PENDENTE = "PENDENTE"
    CONFIRMADO = "CONFIRMADO"
    EM_PRODUCAO = "EM_PRODUCAO"
    PRONTO = "PRONTO"
    ENTREGUE = "ENTREGUE"
    CANCELADO = "CANCELADO"


VALID_TRANSITIONS: Mapping[OrderStatus, frozenset] = MappingProxyType({
    OrderStatus.RASCUNHO:    frozenset({OrderStatus.PENDENTE}),
    OrderStatus.PENDENTE:    frozenset({OrderStatus.CONFIRMADO, OrderStatus.CANCELADO}),
    OrderStatus.CONFIRMADO:  frozenset({OrderStatus.EM_PRODUCAO, OrderStatus.CANCELADO}),
    OrderStatus.EM_PRODUCAO: frozenset({OrderStatus.PRONTO, OrderStatus.CANCELADO}),
    OrderStatus.PRONTO:      frozenset({OrderStatus.ENTREGUE, OrderStatus.CANCELADO}),
    OrderStatus.ENTREGUE:    frozenset(),
    OrderStatus.CANCELADO:   frozenset(),
})

TERMINAL_STATUSES = frozenset({OrderStatus.ENTREGUE, OrderStatus.CANCELADO})

# items and quantities can only be edited before confirmation
EDITABLE_STATUSES = frozenset({OrderStatus.RASCUNHO, OrderStatus.PENDENTE})

# target statuses each role kind may request, on top of VALID_TRANSITIONS
ROLE_TARGETS: Mapping[RoleType, frozenset] = MappingProxyType({
    RoleType.INTERNAL: frozenset(OrderStatus),
    RoleType.CLIENT:   frozenset({OrderStatus.CANCELADO}),
})


@dataclass(frozen=True)
class TransitionDecision:
    current: OrderStatus
    requested: OrderStatus
    new_status: OrderStatus | None = None
    error: DomainError | None = None

    @property
    def allowed(self) -> bool:
        return self.error is None


def is_valid_transition(current: OrderStatus | str, requested: OrderStatus | str) -> bool:
    return OrderStatus(requested) in VALID_TRANSITIONS.get(OrderStatus(current), frozenset())


def decide_transition(
    current: OrderStatus | str,
    requested: OrderStatus | str,
    role: RoleType,
) -> TransitionDecision:
    current = OrderStatus(current)
    requested = OrderStatus(requested)
    arrow = f"{current.value} → {requested.value}"

    if current in TERMINAL_STATUSES:
        return TransitionDecision(
            current, requested,
            error=BadRequestError(f"Invalid transition: {arrow} ({current.value} is a final status)"),
        )
    if not is_valid_transition(current, requested):
        return TransitionDecision(current, requested, error=BadRequestError(f"Invalid transition: {arrow}"))
    if requested not in ROLE_TARGETS[role]:
        return TransitionDecision(
            current, requested,
            error=ForbiddenError(f"Role {role.value} cannot perform transition {arrow}"),
        )
    return TransitionDecision(current, requested, new_status=requested)


def apply_transition(
    current: OrderStatus | str,
    requested: OrderStatus | str,
    role: RoleType,
) -> OrderStatus:
    """Returns the new status or raises the decision's error."""
    decision = decide_transition(current, requested, role)
    if decision.error is not None:
        raise decision.error
    return decision.new_status


def allowed_targets(current: OrderStatus | str, role: RoleType) -> frozenset:
    """Statuses the given role may move an order to from `current`."""
    return VALID_TRANSITIONS.get(OrderStatus(current), frozenset()) & ROLE_TARGETS[role]
