"""
Role kinds, role codes and the role -> permission table.

Permissions are "resource:action" strings, e.g. "pedidos:criar".
The table is immutable; deployments pass overrides through settings.
"""
from enum import Enum
from types import MappingProxyType
from typing import Iterable, Mapping


class RoleType(str, Enum):
    INTERNAL = "INTERNAL"
    CLIENT = "CLIENT"


class RoleCode(str, Enum):
    # bakery staff
    ADMIN_SISTEMA = "ADMIN_SISTEMA"
    GERENTE_COMERCIAL = "GERENTE_COMERCIAL"
    OPERADOR_PEDIDOS = "OPERADOR_PEDIDOS"
    FINANCEIRO = "FINANCEIRO"
    AUDITOR_READONLY = "AUDITOR_READONLY"
    # B2B client companies
    CLIENTE_ADMIN = "CLIENTE_ADMIN"
    CLIENTE_USUARIO = "CLIENTE_USUARIO"


ROLE_TYPES: Mapping[RoleCode, RoleType] = MappingProxyType({
    RoleCode.ADMIN_SISTEMA:     RoleType.INTERNAL,
    RoleCode.GERENTE_COMERCIAL: RoleType.INTERNAL,
    RoleCode.OPERADOR_PEDIDOS:  RoleType.INTERNAL,
    RoleCode.FINANCEIRO:        RoleType.INTERNAL,
    RoleCode.AUDITOR_READONLY:  RoleType.INTERNAL,
    RoleCode.CLIENTE_ADMIN:     RoleType.CLIENT,
    RoleCode.CLIENTE_USUARIO:   RoleType.CLIENT,
})

PermissionSet = frozenset
PermissionTable = Mapping[RoleCode, PermissionSet]

_ORDERS_ALL = ("pedidos:listar", "pedidos:ver", "pedidos:criar", "pedidos:editar", "pedidos:cancelar")

DEFAULT_PERMISSIONS: PermissionTable = MappingProxyType({
    RoleCode.ADMIN_SISTEMA: frozenset(_ORDERS_ALL + (
        "relatorios:ver", "relatorios:exportar", "clientes:listar", "produtos:listar", "usuarios:listar",
    )),
    RoleCode.GERENTE_COMERCIAL: frozenset(_ORDERS_ALL + (
        "relatorios:ver", "relatorios:exportar", "clientes:listar", "produtos:listar",
    )),
    RoleCode.OPERADOR_PEDIDOS: frozenset(_ORDERS_ALL + ("produtos:listar",)),
    RoleCode.FINANCEIRO: frozenset(("pedidos:listar", "pedidos:ver", "relatorios:ver", "relatorios:exportar")),
    RoleCode.AUDITOR_READONLY: frozenset(("pedidos:listar", "pedidos:ver", "relatorios:ver")),
    RoleCode.CLIENTE_ADMIN: frozenset((
        "pedidos:listar", "pedidos:ver", "pedidos:criar", "pedidos:editar", "relatorios:ver",
    )),
    RoleCode.CLIENTE_USUARIO: frozenset(("pedidos:listar", "pedidos:ver", "pedidos:criar", "pedidos:editar")),
})


def role_type(code: RoleCode | str) -> RoleType:
    return ROLE_TYPES[RoleCode(code)]


def build_permission_table(overrides: Mapping[str, Iterable[str]] | None = None) -> PermissionTable:
    """
    Returns DEFAULT_PERMISSIONS with the roles listed in `overrides` replaced.
    Unknown role codes raise ValueError.
    """
    table = dict(DEFAULT_PERMISSIONS)
    for code, permissions in (overrides or {}).items():
        table[RoleCode(code)] = frozenset(permissions)
    return MappingProxyType(table)


def permissions_for(code: RoleCode | str, table: PermissionTable = DEFAULT_PERMISSIONS) -> PermissionSet:
    try:
        return table.get(RoleCode(code), frozenset())
    except ValueError:
        return frozenset()
