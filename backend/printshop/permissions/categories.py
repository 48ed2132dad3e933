# Overview: Closed enumerations for roles, feature modules, and capabilities.

from enum import Enum


class Role(str, Enum):
    """Role claim carried by every user. SUPERADMIN is never stored in the matrix."""
    SUPERADMIN = "superadmin"
    ADMIN = "admin"
    VENDEDOR = "vendedor"
    MODERATOR = "moderator"
    CLIENTE = "cliente"
    USER = "user"


class Module(str, Enum):
    """Feature areas that are activated per company and permissioned per role."""
    CADASTRO = "cadastro"
    VENDAS = "vendas"
    FINANCEIRO = "financeiro"
    ESTOQUE = "estoque"
    RELATORIOS = "relatorios"
    UTILIDADES = "utilidades"
    MEUS_PEDIDOS = "meus_pedidos"


class Capability(str, Enum):
    VIEW = "view"
    EDIT = "edit"
    DELETE = "delete"
    EXPORT = "export"


# Production board, quality gate and order workflow live under the sales module.
PRODUCTION_MODULE = Module.VENDAS
