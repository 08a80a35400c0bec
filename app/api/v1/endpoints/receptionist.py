import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from starlette.concurrency import run_in_threadpool

from app.api.deps import get_booking_service, get_inspection_service
from app.api.v1.endpoints.auth import require_role
from app.api.v1.errors import raise_http
from app.core.exceptions import FleetError
from app.core.rbac import UserRole
from app.services.bookings import BookingService, filter_bookings, paginate
from app.services.inspections import InspectionService, get_inspection_status

logger = logging.getLogger("fleet.receptionist")
router = APIRouter()

receptionist_only = require_role(UserRole.RECEPTIONIST)

@router.get("/bookings")
async def approved_bookings(
    user: dict = Depends(receptionist_only),
    bookings: BookingService = Depends(get_booking_service),
    inspections: InspectionService = Depends(get_inspection_service),
):
    """Approved bookings with key handover and inspection progress."""
    all_bookings = await run_in_threadpool(bookings.list_bookings)
    submitted = await run_in_threadpool(inspections.list_all)
    return [
        {
            "booking": b,
            "preInspection": get_inspection_status(b, submitted, "pre"),
            "postInspection": get_inspection_status(b, submitted, "post"),
        }
        for b in all_bookings if b.is_approved
    ]

@router.post("/bookings/{booking_id}/key-collection")
async def key_collected(booking_id: str, user: dict = Depends(receptionist_only), bookings: BookingService = Depends(get_booking_service)):
    try:
        return await run_in_threadpool(bookings.record_key_collection, user["uid"], booking_id)
    except FleetError as e:
        raise_http(e)

@router.post("/bookings/{booking_id}/key-return")
async def key_returned(booking_id: str, user: dict = Depends(receptionist_only), bookings: BookingService = Depends(get_booking_service)):
    try:
        return await run_in_threadpool(bookings.record_key_return, user["uid"], booking_id)
    except FleetError as e:
        raise_http(e)

@router.get("/bookings/{booking_id}/inspections")
async def view_inspections(booking_id: str, user: dict = Depends(receptionist_only), inspections: InspectionService = Depends(get_inspection_service)):
    """Only submitted forms can be viewed."""
    return await run_in_threadpool(inspections.list_for_booking, booking_id)

@router.get("/history")
async def booking_history(
    on_date: Optional[date] = Query(None, alias="date"),
    q: Optional[str] = None,
    page: int = Query(1, ge=1),
    user: dict = Depends(receptionist_only),
    bookings: BookingService = Depends(get_booking_service),
):
    archived = await run_in_threadpool(bookings.archived_history)
    return paginate(filter_bookings(archived, on_date, q), page)
