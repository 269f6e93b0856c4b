"""Read-only selectors returning frozen views."""

from depot_kernel.selectors.delivery_selector import DeliverySelector
from depot_kernel.selectors.ledger_selector import LedgerSelector
from depot_kernel.selectors.material_selector import MaterialSelector
from depot_kernel.selectors.request_selector import RequestSelector

__all__ = [
    "DeliverySelector",
    "LedgerSelector",
    "MaterialSelector",
    "RequestSelector",
]
