from pydantic import BaseModel, ConfigDict, Field
from typing import Optional
from datetime import datetime

from app.models.user import User
from app.models.vehicle import Vehicle

class BookingStatus:
    PENDING = "Pending"
    APPROVED = "Approved"
    REJECTED = "Rejected"

class Booking(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    project: str
    destination: str
    passengers: int
    bookingStatus: bool = False           # Approved by an Admin
    keyCollectionStatus: bool = False
    keyReturnStatus: bool = False
    bookingDate: datetime
    returnDate: datetime
    createdAt: Optional[datetime] = None
    updatedAt: Optional[datetime] = None

    managedBy: Optional[User] = None      # Receptionist handling the keys
    approvedBy: Optional[User] = None     # Admin who reviewed the request
    bookedBy: Optional[User] = None       # Staff member who requested it

    vehicle: Vehicle
    rejectionReason: Optional[str] = None

    @property
    def is_rejected(self) -> bool:
        return bool(self.rejectionReason)

    @property
    def is_approved(self) -> bool:
        """Approved and not carrying a rejection reason."""
        return self.bookingStatus and not self.is_rejected

    @property
    def status_label(self) -> str:
        if self.is_rejected:
            return BookingStatus.REJECTED
        return BookingStatus.APPROVED if self.bookingStatus else BookingStatus.PENDING

class BookingRequest(BaseModel):
    """What a Staff member fills in on the booking form."""
    project: str = Field(min_length=1)
    destination: str = Field(min_length=1)
    passengers: int = Field(ge=1)
    bookingDate: datetime
    returnDate: datetime
    vehicleId: str

class RejectionRequest(BaseModel):
    reason: str
