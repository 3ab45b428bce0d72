from .base import BaseClient
from .catalog_client import CatalogClient
from .gateway import HttpSyncGateway
from .health import HealthClient
from .inventory_client import InventoryClient
from .sales_client import SalesClient

__all__ = [
    "BaseClient",
    "CatalogClient",
    "HealthClient",
    "HttpSyncGateway",
    "InventoryClient",
    "SalesClient",
]
