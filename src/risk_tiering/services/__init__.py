"""Services: inventory tracking, audit ledger and the OpenAI client factory."""

from risk_tiering.services.audit_ledger import AuditLedger
from risk_tiering.services.inventory import InventoryService, validation_status

__all__ = [
    "AuditLedger",
    "InventoryService",
    "validation_status",
]
