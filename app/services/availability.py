from datetime import date, datetime, timedelta
from typing import Iterable, List, Optional, Union

from app.models.booking import Booking
from app.models.vehicle import Vehicle, VehicleStatus

DateLike = Union[date, datetime, str]

def as_day(value: DateLike) -> date:
    """Normalizes a date, datetime or ISO string to a calendar day."""
    if isinstance(value, str):
        value = datetime.fromisoformat(value)
    if isinstance(value, datetime):
        return value.date()
    return value

def _covers(booking: Booking, day: date) -> bool:
    return as_day(booking.bookingDate) <= day <= as_day(booking.returnDate)

def _blocks_range(booking: Booking) -> bool:
    """
    Approved bookings and pending requests nobody reviewed yet hold the vehicle.
    Rejected bookings and reviewed disapprovals release it.
    """
    if booking.rejectionReason:
        return False
    if booking.bookingStatus:
        return True
    return booking.approvedBy is None

def is_vehicle_available(vehicle: Vehicle, day: DateLike, bookings: Iterable[Booking]) -> bool:
    """False if the vehicle is in maintenance or an approved booking covers `day`."""
    if vehicle.maintenanceStatus:
        return False

    check_day = as_day(day)
    return not any(
        b.bookingStatus and b.vehicle.id == vehicle.id and _covers(b, check_day)
        for b in bookings
    )

def is_vehicle_available_for_range(
    vehicle: Vehicle,
    start: DateLike,
    end: DateLike,
    bookings: Iterable[Booking],
    exclude_booking_id: Optional[str] = None,
) -> bool:
    if vehicle.maintenanceStatus:
        return False

    start_day, end_day = as_day(start), as_day(end)
    for b in bookings:
        if b.id == exclude_booking_id or b.vehicle.id != vehicle.id:
            continue
        if not _blocks_range(b):
            continue
        # Ranges overlap if: start1 <= end2 AND start2 <= end1
        if start_day <= as_day(b.returnDate) and as_day(b.bookingDate) <= end_day:
            return False
    return True

def get_next_available_date(
    vehicle: Vehicle,
    bookings: Iterable[Booking],
    start: Optional[DateLike] = None,
    max_days: int = 90,
) -> Optional[date]:
    """First free day within `max_days` of `start` (today by default), else None."""
    if vehicle.maintenanceStatus:
        return None

    bookings = list(bookings)
    first_day = as_day(start) if start is not None else date.today()
    for offset in range(max_days):
        day = first_day + timedelta(days=offset)
        if is_vehicle_available(vehicle, day, bookings):
            return day
    return None

def get_booked_dates(vehicle: Vehicle, start: DateLike, end: DateLike, bookings: Iterable[Booking]) -> List[date]:
    """Every day in [start, end] taken by an approved booking of this vehicle."""
    start_day, end_day = as_day(start), as_day(end)
    booked = []
    for b in bookings:
        if not (b.bookingStatus and b.vehicle.id == vehicle.id):
            continue
        day = max(as_day(b.bookingDate), start_day)
        last = min(as_day(b.returnDate), end_day)
        while day <= last:
            booked.append(day)
            day += timedelta(days=1)
    return booked

def get_vehicle_status(vehicle: Vehicle, bookings: Iterable[Booking], today: Optional[DateLike] = None) -> str:
    if vehicle.manualMaintenanceMode:
        return VehicleStatus.MAINTENANCE

    today = as_day(today) if today is not None else date.today()
    in_use = any(
        b.vehicle.id == vehicle.id and b.is_approved and _covers(b, today)
        for b in bookings
    )
    return VehicleStatus.IN_USE if in_use else VehicleStatus.AVAILABLE

def get_next_booking_date(vehicle: Vehicle, bookings: Iterable[Booking], today: Optional[DateLike] = None) -> Optional[date]:
    today = as_day(today) if today is not None else date.today()
    upcoming = [
        as_day(b.bookingDate) for b in bookings
        if b.vehicle.id == vehicle.id and b.is_approved and as_day(b.bookingDate) >= today
    ]
    return min(upcoming) if upcoming else None
