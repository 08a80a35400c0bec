import logging
import math
from datetime import date
from typing import Any, Dict, List, Optional, Sequence

from app.core.exceptions import (
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
    VehicleUnavailableError,
)
from app.db.firestore import DocumentStore
from app.models.booking import Booking, BookingRequest
from app.models.user import User
from app.services.availability import as_day, is_vehicle_available_for_range
from app.services.vehicles import VehicleService
from app.utils.booking_id import generate_booking_id

logger = logging.getLogger("fleet.bookings")

HISTORY_ARCHIVE_DAYS = 7
ENTRIES_PER_PAGE = 10

class BookingService:
    def __init__(self, store: DocumentStore):
        self.store = store
        self.vehicles = VehicleService(store)

    # --- READ ---
    def get_booking(self, booking_id: str) -> Booking:
        doc = self.store.get_document("bookings", booking_id)
        if not doc:
            raise NotFoundError("Booking not found")
        return Booking(**doc)

    def list_bookings(self) -> List[Booking]:
        return [Booking(**doc) for doc in self.store.get_all_documents("bookings")]

    def list_for_staff(self, uid: str) -> List[Booking]:
        docs = self.store.query_documents("bookings", [("bookedBy.id", "==", uid)])
        return sorted((Booking(**d) for d in docs), key=_created, reverse=True)

    def history_for_staff(self, uid: str) -> List[Booking]:
        """Finished trips (keys returned) and rejected requests, newest first."""
        return [b for b in self.list_for_staff(uid) if b.keyReturnStatus or b.is_rejected]

    def archived_history(self, today: Optional[date] = None) -> List[Booking]:
        """Returned bookings that are at least a week past their return date."""
        today = today or date.today()
        return sorted(
            (
                b for b in self.list_bookings()
                if b.keyReturnStatus and (today - as_day(b.returnDate)).days >= HISTORY_ARCHIVE_DAYS
            ),
            key=lambda b: as_day(b.returnDate),
            reverse=True,
        )

    def _user(self, uid: str) -> User:
        doc = self.store.get_document("users", uid)
        if not doc:
            raise NotFoundError("User not found")
        return User(**doc)

    def _user_ref(self, uid: str) -> Dict[str, Any]:
        """The user as embedded in a booking, without the temporary password."""
        return self._user(uid).model_dump(exclude={"password"})

    def _check_vehicle_free(self, vehicle, request: BookingRequest, exclude_booking_id: Optional[str] = None) -> None:
        if as_day(request.returnDate) < as_day(request.bookingDate):
            raise ValidationError("Return date cannot be before booking date")
        if request.passengers > vehicle.seatCapacity:
            raise ValidationError(f"Vehicle seats {vehicle.seatCapacity} passengers at most")
        if not is_vehicle_available_for_range(
            vehicle, request.bookingDate, request.returnDate, self.list_bookings(), exclude_booking_id
        ):
            raise VehicleUnavailableError()

    # --- STAFF ---
    def create_booking(self, staff_uid: str, request: BookingRequest) -> Booking:
        vehicle = self.vehicles.get_vehicle(request.vehicleId)
        self._check_vehicle_free(vehicle, request)

        booking_id = generate_booking_id()
        while self.store.get_document("bookings", booking_id):
            booking_id = generate_booking_id()

        data: Dict[str, Any] = request.model_dump(exclude={"vehicleId"})
        data.update({
            "bookingStatus": False,
            "keyCollectionStatus": False,
            "keyReturnStatus": False,
            "bookedBy": self._user_ref(staff_uid),
            "managedBy": None,
            "approvedBy": None,
            "vehicle": vehicle.model_dump(),
        })
        self.store.set_document("bookings", booking_id, data)
        logger.info(f"Booking {booking_id} requested by {staff_uid} for {vehicle.plateNumber}")
        return Booking(id=booking_id, **data)

    def _own_booking(self, staff_uid: str, booking_id: str) -> Booking:
        booking = self.get_booking(booking_id)
        if not booking.bookedBy or booking.bookedBy.id != staff_uid:
            raise PermissionDeniedError("You can only manage your own bookings")
        return booking

    def update_booking(self, staff_uid: str, booking_id: str, request: BookingRequest) -> Booking:
        booking = self._own_booking(staff_uid, booking_id)
        if booking.bookingStatus or booking.approvedBy or booking.is_rejected:
            raise ValidationError("Only pending bookings can be edited")

        vehicle = self.vehicles.get_vehicle(request.vehicleId)
        self._check_vehicle_free(vehicle, request, exclude_booking_id=booking_id)

        changes = request.model_dump(exclude={"vehicleId"})
        changes["vehicle"] = vehicle.model_dump()
        self.store.update_document("bookings", booking_id, changes)
        return self.get_booking(booking_id)

    def cancel_booking(self, staff_uid: str, booking_id: str) -> None:
        booking = self._own_booking(staff_uid, booking_id)
        if booking.keyCollectionStatus:
            raise ValidationError("Bookings cannot be cancelled after the keys were collected")
        self.store.delete_document("bookings", booking_id)
        logger.info(f"Booking {booking_id} cancelled by {staff_uid}")

    # --- ADMIN ---
    def approve_booking(self, admin_uid: str, booking_id: str) -> Booking:
        self.get_booking(booking_id)
        self.store.update_document("bookings", booking_id, {
            "bookingStatus": True,
            "approvedBy": self._user_ref(admin_uid),
            "rejectionReason": None,
        })
        logger.info(f"Booking {booking_id} approved by {admin_uid}")
        return self.get_booking(booking_id)

    def reject_booking(self, admin_uid: str, booking_id: str, reason: str) -> Booking:
        if not reason or not reason.strip():
            raise ValidationError("Please provide a reason for rejection")
        booking = self.get_booking(booking_id)
        if booking.keyCollectionStatus:
            raise ValidationError("Bookings cannot be rejected after the keys were collected")
        self.store.update_document("bookings", booking_id, {
            "bookingStatus": False,
            "approvedBy": self._user_ref(admin_uid),
            "rejectionReason": reason.strip(),
        })
        logger.info(f"Booking {booking_id} rejected by {admin_uid}: {reason.strip()}")
        return self.get_booking(booking_id)

    # --- RECEPTIONIST ---
    def record_key_collection(self, receptionist_uid: str, booking_id: str) -> Booking:
        booking = self.get_booking(booking_id)
        if not booking.is_approved:
            raise ValidationError("Keys can only be handed over for approved bookings")
        if booking.keyCollectionStatus:
            raise ValidationError("Keys were already collected")
        self.store.update_document("bookings", booking_id, {
            "keyCollectionStatus": True,
            "managedBy": self._user_ref(receptionist_uid),
        })
        return self.get_booking(booking_id)

    def record_key_return(self, receptionist_uid: str, booking_id: str) -> Booking:
        booking = self.get_booking(booking_id)
        if not booking.keyCollectionStatus:
            raise ValidationError("Keys must be collected before they can be returned")
        if booking.keyReturnStatus:
            raise ValidationError("Keys were already returned")
        self.store.update_document("bookings", booking_id, {
            "keyReturnStatus": True,
            "managedBy": self._user_ref(receptionist_uid),
        })
        return self.get_booking(booking_id)

def _created(booking: Booking) -> float:
    return booking.createdAt.timestamp() if booking.createdAt else 0.0

def filter_bookings(bookings: Sequence[Booking], on_date: Optional[date] = None, text: Optional[str] = None) -> List[Booking]:
    """Search by a day inside the trip and/or free text over vehicle, plate, project and staff name."""
    needle = (text or "").strip().lower()
    result = []
    for b in bookings:
        if on_date and not (as_day(b.bookingDate) <= on_date <= as_day(b.returnDate)):
            continue
        if needle:
            haystack = " ".join([
                b.vehicle.brand, b.vehicle.model, b.vehicle.plateNumber, b.project,
                b.bookedBy.full_name if b.bookedBy else "",
            ]).lower()
            if needle not in haystack:
                continue
        result.append(b)
    return result

def paginate(items: Sequence[Any], page: int = 1, per_page: int = ENTRIES_PER_PAGE) -> Dict[str, Any]:
    total_pages = max(1, math.ceil(len(items) / per_page))
    page = min(max(1, page), total_pages)
    start = (page - 1) * per_page
    return {
        "items": list(items[start:start + per_page]),
        "page": page,
        "totalPages": total_pages,
        "totalEntries": len(items),
    }
