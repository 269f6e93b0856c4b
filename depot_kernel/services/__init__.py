"""Services for the depot kernel (write side)."""

from depot_kernel.services.delivery_note_issuer import DeliveryNoteIssuer
from depot_kernel.services.material_catalog import MaterialCatalog
from depot_kernel.services.request_workflow import RequestWorkflow
from depot_kernel.services.sequence_service import SequenceCounter, SequenceService
from depot_kernel.services.stock_ledger import StockLedger

__all__ = [
    "DeliveryNoteIssuer",
    "MaterialCatalog",
    "RequestWorkflow",
    "SequenceCounter",
    "SequenceService",
    "StockLedger",
]
