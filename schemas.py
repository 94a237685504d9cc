"""
Database Schemas for the Smart Parking API

Each document model maps to one MongoDB collection (see ``COLLECTION``).
Request bodies that only carry a subset of fields are declared next to the
document they modify.
"""
from datetime import datetime
from typing import ClassVar, Literal, Optional

from pydantic import BaseModel, EmailStr, Field

SlotStatus = Literal["free", "booked"]

SessionStatus = Literal["initial", "parked", "paid", "repay", "completed", "entrance_error"]

CURRENT_STATUSES = ("initial", "parked", "paid", "repay")
HISTORY_STATUSES = ("entrance_error", "completed")


class Slot(BaseModel):
    COLLECTION: ClassVar[str] = "slots"

    slot_number: str = Field(..., min_length=1, description="Human-readable slot label")
    vehicle_type: str = Field(..., min_length=1, description="Vehicle category the slot accepts")
    status: SlotStatus = Field("free", description="Occupancy status")


class SlotStatusUpdate(BaseModel):
    status: SlotStatus


class SlotFieldsUpdate(BaseModel):
    slot_number: Optional[str] = Field(None, min_length=1)
    vehicle_type: Optional[str] = Field(None, min_length=1)


class ParkingSession(BaseModel):
    COLLECTION: ClassVar[str] = "parkings"

    uid: str = Field(..., description="Id of the user who booked")
    vehicle_type: Optional[str] = None
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    slot_number: Optional[str] = Field(None, description="Assigned at the entrance gate")
    booking_time: datetime
    entry_time: Optional[datetime] = None
    exit_time: Optional[datetime] = None
    paid: Optional[float] = None
    paid_time: Optional[datetime] = None
    status: SessionStatus = "initial"


class BookingRequest(BaseModel):
    uid: str = Field(..., min_length=1)
    vehicle_type: Optional[str] = None
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None


class ParkRequest(BaseModel):
    slot_number: str = Field(..., min_length=1)


class PaymentRequest(BaseModel):
    amount: float = Field(..., gt=0, description="Amount paid in this transaction")


class Admin(BaseModel):
    COLLECTION: ClassVar[str] = "admins"

    name: str
    email: EmailStr
    phone: Optional[str] = None
    created_at: datetime
    uid: Optional[str] = Field(None, description="Identity provider subject id")
    registered: bool = False
    updated_at: Optional[datetime] = None


class AdminCreate(BaseModel):
    name: str = Field(..., min_length=1)
    email: EmailStr
    phone: Optional[str] = None


class AdminLink(BaseModel):
    email: EmailStr
    uid: str = Field(..., min_length=1)


class ChargeRule(BaseModel):
    COLLECTION: ClassVar[str] = "charges"

    vehicle_type: str = Field(..., min_length=1)
    charge: float = Field(..., ge=0, description="Rate per minute")


class ChargeRuleUpdate(BaseModel):
    vehicle_type: Optional[str] = Field(None, min_length=1)
    charge: Optional[float] = Field(None, ge=0)
