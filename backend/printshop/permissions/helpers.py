# Overview: Utility functions for parsing and describing roles, modules and capabilities.

from .categories import Role, Module
from .definitions import MODULE_DEFINITIONS


def parse_role(value) -> Role:
    """Coerce a raw claim to a Role, raising ValueError for unknown values."""
    try:
        return Role(value)
    except ValueError:
        raise ValueError(f"Unknown role '{value}'")


def parse_module(value) -> Module:
    try:
        return Module(value)
    except ValueError:
        raise ValueError(f"Unknown module '{value}'")


def get_module_definition(module):
    """Get full definition for a module."""
    for mod, label, description in MODULE_DEFINITIONS:
        if mod == module:
            return {
                "key": mod.value,
                "label": label,
                "description": description,
            }
    return None
