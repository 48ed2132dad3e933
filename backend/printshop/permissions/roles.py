# Overview: Default role -> module capability matrix seeded on install.

from .categories import Role, Module, Capability

V, E, D, X = Capability.VIEW, Capability.EDIT, Capability.DELETE, Capability.EXPORT


# Roles absent from a module have no capabilities there (fail closed).
# SUPERADMIN is implicit full access and is never part of the matrix.
DEFAULT_ROLE_PERMISSIONS: dict[Role, dict[Module, set[Capability]]] = {
    Role.ADMIN: {
        Module.CADASTRO: {V, E, X},
        Module.VENDAS: {V, E, X},
        Module.ESTOQUE: {V, E, X},
        Module.RELATORIOS: {V, X},
        Module.UTILIDADES: {V, E, D, X},
        Module.MEUS_PEDIDOS: {V},
    },
    Role.VENDEDOR: {
        Module.VENDAS: {V, E},
        Module.RELATORIOS: {V},
        Module.MEUS_PEDIDOS: {V},
    },
    Role.CLIENTE: {
        Module.MEUS_PEDIDOS: {V},
    },
    Role.MODERATOR: {},
    Role.USER: {},
}
