import logging
from datetime import date
from typing import Literal, Optional

from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile
from starlette.concurrency import run_in_threadpool

from app.api.deps import get_booking_service, get_inspection_service, get_vehicle_service
from app.api.v1.endpoints.auth import get_current_user
from app.api.v1.errors import raise_http
from app.core.exceptions import FleetError
from app.core.rbac import Action, check_permission
from app.db.storage import generate_inspection_image_path, upload_file
from app.models.booking import Booking, BookingRequest
from app.models.inspection import InspectionForm, InspectionStatus
from app.models.user import User
from app.services.availability import is_vehicle_available_for_range
from app.services.bookings import BookingService, filter_bookings, paginate
from app.services.inspections import InspectionService, get_inspection_status
from app.services.vehicles import VehicleService
from app.utils.booking_id import is_valid_booking_id

logger = logging.getLogger("fleet.bookings")
router = APIRouter()

IMAGE_TYPES = ["image/jpeg", "image/png", "image/webp"]

def _staff(user: dict) -> dict:
    if not check_permission(user["role"], Action.REQUEST_BOOKING):
        raise HTTPException(status_code=403, detail="Access denied")
    return user

def _check_booking_id(booking_id: str) -> None:
    if not is_valid_booking_id(booking_id):
        raise HTTPException(status_code=404, detail="Booking not found")

def _check_access(user: dict, booking: Booking) -> None:
    """Staff only see their own bookings; roles with VIEW_ALL_BOOKINGS see all."""
    if check_permission(user["role"], Action.VIEW_ALL_BOOKINGS):
        return
    if not booking.bookedBy or booking.bookedBy.id != user["uid"]:
        raise HTTPException(status_code=403, detail="Access denied")

async def _load_booking(bookings: BookingService, booking_id: str, user: dict) -> Booking:
    _check_booking_id(booking_id)
    try:
        booking = await run_in_threadpool(bookings.get_booking, booking_id)
    except FleetError as e:
        raise_http(e)
    _check_access(user, booking)
    return booking

# --- 1. VEHICLE LOOKUP ---
@router.get("/vehicles/available")
async def available_vehicles(
    start: date,
    end: date,
    user: dict = Depends(get_current_user),
    bookings: BookingService = Depends(get_booking_service),
    vehicles: VehicleService = Depends(get_vehicle_service),
):
    """Vehicles free for the whole [start, end] range."""
    _staff(user)
    all_bookings = await run_in_threadpool(bookings.list_bookings)
    fleet = await run_in_threadpool(vehicles.list_vehicles)
    return [v for v in fleet if is_vehicle_available_for_range(v, start, end, all_bookings)]

# --- 2. MY BOOKINGS ---
@router.get("/")
async def my_bookings(user: dict = Depends(get_current_user), bookings: BookingService = Depends(get_booking_service)):
    _staff(user)
    return await run_in_threadpool(bookings.list_for_staff, user["uid"])

@router.post("/")
async def create_booking(data: BookingRequest, user: dict = Depends(get_current_user), bookings: BookingService = Depends(get_booking_service)):
    _staff(user)
    try:
        return await run_in_threadpool(bookings.create_booking, user["uid"], data)
    except FleetError as e:
        raise_http(e)

@router.get("/history")
async def my_history(
    on_date: Optional[date] = Query(None, alias="date"),
    q: Optional[str] = None,
    page: int = Query(1, ge=1),
    user: dict = Depends(get_current_user),
    bookings: BookingService = Depends(get_booking_service),
):
    """Completed and rejected bookings, newest first."""
    _staff(user)
    history = await run_in_threadpool(bookings.history_for_staff, user["uid"])
    return paginate(filter_bookings(history, on_date, q), page)

@router.get("/inspections/todo")
async def my_inspection_todos(user: dict = Depends(get_current_user), inspections: InspectionService = Depends(get_inspection_service)):
    """Inspections the caller still has to submit."""
    _staff(user)
    return await run_in_threadpool(inspections.todos_for_user, user["uid"])

@router.get("/{booking_id}")
async def get_booking(booking_id: str, user: dict = Depends(get_current_user), bookings: BookingService = Depends(get_booking_service)):
    return await _load_booking(bookings, booking_id, user)

@router.put("/{booking_id}")
async def update_booking(
    booking_id: str,
    data: BookingRequest,
    user: dict = Depends(get_current_user),
    bookings: BookingService = Depends(get_booking_service),
):
    _staff(user)
    _check_booking_id(booking_id)
    try:
        return await run_in_threadpool(bookings.update_booking, user["uid"], booking_id, data)
    except FleetError as e:
        raise_http(e)

@router.delete("/{booking_id}")
async def cancel_booking(booking_id: str, user: dict = Depends(get_current_user), bookings: BookingService = Depends(get_booking_service)):
    """Cancels a booking whose keys have not been collected yet."""
    _staff(user)
    _check_booking_id(booking_id)
    try:
        await run_in_threadpool(bookings.cancel_booking, user["uid"], booking_id)
        return {"message": "Booking cancelled"}
    except FleetError as e:
        raise_http(e)

# --- 3. INSPECTIONS ---
@router.get("/{booking_id}/inspections")
async def booking_inspection_status(
    booking_id: str,
    user: dict = Depends(get_current_user),
    bookings: BookingService = Depends(get_booking_service),
    inspections: InspectionService = Depends(get_inspection_service),
):
    """Submitted / Pending / Not Submitted for both inspection slots."""
    await _load_booking(bookings, booking_id, user)
    try:
        return await run_in_threadpool(inspections.status_for_booking, booking_id)
    except FleetError as e:
        raise_http(e)

@router.post("/{booking_id}/inspections/{form_type}")
async def submit_inspection(
    booking_id: str,
    form_type: Literal["pre", "post"],
    form: InspectionForm,
    user: dict = Depends(get_current_user),
    inspections: InspectionService = Depends(get_inspection_service),
):
    if not check_permission(user["role"], Action.SUBMIT_INSPECTION):
        raise HTTPException(status_code=403, detail="Access denied")
    _check_booking_id(booking_id)
    try:
        submitter = User(id=user["uid"], email=user["email"], role=user["role"])
        return await run_in_threadpool(inspections.submit_inspection, booking_id, form_type, form, submitter)
    except FleetError as e:
        raise_http(e)

@router.post("/{booking_id}/inspections/{form_type}/images")
async def upload_inspection_image(
    booking_id: str,
    form_type: Literal["pre", "post"],
    file: UploadFile = File(...),
    user: dict = Depends(get_current_user),
    bookings: BookingService = Depends(get_booking_service),
    inspections: InspectionService = Depends(get_inspection_service),
):
    """Uploads one photo for an open inspection slot and returns its URL for the form."""
    if not check_permission(user["role"], Action.SUBMIT_INSPECTION):
        raise HTTPException(status_code=403, detail="Access denied")
    booking = await _load_booking(bookings, booking_id, user)
    submitted = await run_in_threadpool(inspections.list_for_booking, booking_id)
    if get_inspection_status(booking, submitted, form_type) != InspectionStatus.PENDING:
        raise HTTPException(status_code=409, detail=f"The {form_type}-trip inspection is not open for this booking")
    if file.content_type not in IMAGE_TYPES:
        raise HTTPException(status_code=400, detail="Only images allowed")

    try:
        path = generate_inspection_image_path(booking_id, form_type, file.filename or "image")
        url = await run_in_threadpool(upload_file, file.file, path, file.content_type)
        return {"url": url, "path": path}
    except Exception as e:
        logger.error(f"Inspection image upload failed: {e}")
        raise HTTPException(status_code=500, detail="Upload failed")
