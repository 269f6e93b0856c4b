"""ORM models for the depot kernel."""

from depot_kernel.models.delivery_note import DeliveryLine, DeliveryNote
from depot_kernel.models.material import Material
from depot_kernel.models.request import MaterialRequest, RequestLine
from depot_kernel.models.stock_movement import StockMovement

__all__ = [
    "DeliveryLine",
    "DeliveryNote",
    "Material",
    "MaterialRequest",
    "RequestLine",
    "StockMovement",
]
