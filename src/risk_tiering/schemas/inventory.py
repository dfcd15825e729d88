"""Inventory schemas for classified entities under validation tracking."""

from datetime import date
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class InventoryStatus(str, Enum):
    """Tracking status of an inventory record."""

    ACTIVE = "Active"
    RETIRED = "Retired"
    SUSPENDED = "Suspended"


class ValidationStatus(str, Enum):
    """Where a record stands relative to its next validation due date."""

    OVERDUE = "overdue"
    UPCOMING = "upcoming"
    CURRENT = "current"


class ValidationEvent(BaseModel):
    """A completed validation of an inventory record."""

    validation_date: date
    validation_type: str = Field(default="Periodic", description="Initial, Periodic, Triggered or Ad-hoc")
    validated_by: Optional[str] = None
    overall_result: Optional[str] = Field(
        None, description="Satisfactory, Satisfactory with Findings or Unsatisfactory"
    )
    notes: Optional[str] = None


class InventoryRecord(BaseModel):
    """An entity that has been classified and entered tracking.

    The tier, validation_frequency_months and next_validation_due fields are
    written only by classification, validation recording and policy
    application.
    """

    id: str = Field(..., description="Inventory record identifier")
    entity_id: str = Field(..., description="Identifier of the classified entity")
    name: str = Field(default="", description="Display name of the entity")
    tier: str
    validation_frequency_months: int
    onboarded_at: date = Field(..., description="Date the entity entered the inventory")
    last_validation_date: Optional[date] = None
    next_validation_due: date
    status: InventoryStatus = InventoryStatus.ACTIVE
    attributes: Dict[str, Any] = Field(
        default_factory=dict,
        description="Intake attributes, kept for re-classification",
    )
    validations: List[ValidationEvent] = Field(default_factory=list)


class InventoryStats(BaseModel):
    """Inventory counts. Validation status counts cover Active records only."""

    total: int = 0
    by_tier: Dict[str, int] = Field(default_factory=dict)
    by_status: Dict[str, int] = Field(default_factory=dict)
    by_validation_status: Dict[str, int] = Field(default_factory=dict)
    as_of: date
