# Overview: Permission system package.
# Re-exports all public APIs.

from .categories import Role, Module, Capability, PRODUCTION_MODULE
from .definitions import MODULE_DEFINITIONS
from .roles import DEFAULT_ROLE_PERMISSIONS
from .helpers import (
    parse_role,
    parse_module,
    get_module_definition,
)

__all__ = [
    "Role",
    "Module",
    "Capability",
    "PRODUCTION_MODULE",
    "MODULE_DEFINITIONS",
    "DEFAULT_ROLE_PERMISSIONS",
    "parse_role",
    "parse_module",
    "get_module_definition",
]
