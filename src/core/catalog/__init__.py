"""Catálogo de operaciones del motor de acciones."""

from __future__ import annotations

from core.catalog import devices, networks, organization, security, switching
from core.catalog.registry import Catalog, Family, Operation, OperationContext

__all__ = ["Catalog", "Family", "Operation", "OperationContext", "build_catalog"]


def build_catalog() -> Catalog:
    """Catálogo con todas las operaciones soportadas registradas."""

    catalog = Catalog()
    for module in (switching, devices, organization, networks, security):
        module.register(catalog)
    return catalog
