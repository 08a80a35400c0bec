import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from starlette.concurrency import run_in_threadpool

from app.api.deps import (
    get_account_service,
    get_booking_service,
    get_inspection_service,
    get_vehicle_service,
)
from app.api.v1.endpoints.auth import get_current_user, require_role
from app.api.v1.errors import raise_http
from app.core.exceptions import FleetError
from app.core.rbac import UserRole
from app.models.booking import RejectionRequest
from app.models.user import CreateUserRequest
from app.models.vehicle import VehicleInput
from app.services.accounts import AccountService
from app.services.bookings import BookingService, filter_bookings, paginate
from app.services.inspections import InspectionService, get_inspection_status
from app.services.vehicles import VehicleService

logger = logging.getLogger("fleet.admin")
router = APIRouter()

admin_only = require_role(UserRole.ADMIN)

class MaintenanceUpdate(BaseModel):
    enabled: bool

# --- 1. DASHBOARD ---
@router.get("/stats")
async def get_dashboard_stats(
    user: dict = Depends(admin_only),
    bookings: BookingService = Depends(get_booking_service),
    vehicles: VehicleService = Depends(get_vehicle_service),
):
    """Booking and fleet counts for the admin dashboard."""
    all_bookings = await run_in_threadpool(bookings.list_bookings)
    overview = await run_in_threadpool(vehicles.fleet_overview, all_bookings)
    return {
        "bookings": {
            "total": len(all_bookings),
            "pending": len([b for b in all_bookings if not b.bookingStatus and not b.is_rejected]),
            "approved": len([b for b in all_bookings if b.is_approved]),
            "rejected": len([b for b in all_bookings if b.is_rejected]),
        },
        "vehicles": overview["stats"],
    }

# --- 2. VEHICLES ---
@router.get("/vehicles")
async def list_vehicles(
    user: dict = Depends(admin_only),
    bookings: BookingService = Depends(get_booking_service),
    vehicles: VehicleService = Depends(get_vehicle_service),
):
    """Vehicles with their live status (Available / In Use / Maintenance)."""
    all_bookings = await run_in_threadpool(bookings.list_bookings)
    return await run_in_threadpool(vehicles.fleet_overview, all_bookings)

@router.post("/vehicles")
async def create_vehicle(data: VehicleInput, user: dict = Depends(admin_only), vehicles: VehicleService = Depends(get_vehicle_service)):
    try:
        return await run_in_threadpool(vehicles.create_vehicle, data)
    except FleetError as e:
        raise_http(e)

@router.get("/vehicles/{vehicle_id}")
async def get_vehicle(vehicle_id: str, user: dict = Depends(admin_only), vehicles: VehicleService = Depends(get_vehicle_service)):
    try:
        return await run_in_threadpool(vehicles.get_vehicle, vehicle_id)
    except FleetError as e:
        raise_http(e)

@router.put("/vehicles/{vehicle_id}")
async def update_vehicle(vehicle_id: str, data: VehicleInput, user: dict = Depends(admin_only), vehicles: VehicleService = Depends(get_vehicle_service)):
    try:
        return await run_in_threadpool(vehicles.update_vehicle, vehicle_id, data)
    except FleetError as e:
        raise_http(e)

@router.put("/vehicles/{vehicle_id}/maintenance")
async def set_maintenance(vehicle_id: str, data: MaintenanceUpdate, user: dict = Depends(admin_only), vehicles: VehicleService = Depends(get_vehicle_service)):
    """Manually forces (or releases) Maintenance status."""
    try:
        return await run_in_threadpool(vehicles.set_manual_maintenance, vehicle_id, data.enabled)
    except FleetError as e:
        raise_http(e)

@router.delete("/vehicles/{vehicle_id}")
async def delete_vehicle(
    vehicle_id: str,
    user: dict = Depends(admin_only),
    bookings: BookingService = Depends(get_booking_service),
    vehicles: VehicleService = Depends(get_vehicle_service),
):
    try:
        all_bookings = await run_in_threadpool(bookings.list_bookings)
        await run_in_threadpool(vehicles.delete_vehicle, vehicle_id, all_bookings)
        return {"message": "Vehicle deleted"}
    except FleetError as e:
        raise_http(e)

# --- 3. BOOKINGS ---
@router.get("/bookings")
async def list_bookings(
    status: Optional[str] = Query(None, pattern="^(Pending|Approved|Rejected)$"),
    user: dict = Depends(admin_only),
    bookings: BookingService = Depends(get_booking_service),
):
    """All bookings, optionally narrowed to one status."""
    all_bookings = await run_in_threadpool(bookings.list_bookings)
    if status:
        all_bookings = [b for b in all_bookings if b.status_label == status]
    return all_bookings

@router.post("/bookings/{booking_id}/approve")
async def approve_booking(booking_id: str, user: dict = Depends(admin_only), bookings: BookingService = Depends(get_booking_service)):
    try:
        return await run_in_threadpool(bookings.approve_booking, user["uid"], booking_id)
    except FleetError as e:
        raise_http(e)

@router.post("/bookings/{booking_id}/reject")
async def reject_booking(
    booking_id: str,
    data: RejectionRequest,
    user: dict = Depends(admin_only),
    bookings: BookingService = Depends(get_booking_service),
):
    """Disapproves a booking; a reason is mandatory."""
    try:
        return await run_in_threadpool(bookings.reject_booking, user["uid"], booking_id, data.reason)
    except FleetError as e:
        raise_http(e)

@router.get("/bookings/{booking_id}/inspections")
async def booking_inspections(
    booking_id: str,
    user: dict = Depends(admin_only),
    bookings: BookingService = Depends(get_booking_service),
    inspections: InspectionService = Depends(get_inspection_service),
):
    try:
        booking = await run_in_threadpool(bookings.get_booking, booking_id)
    except FleetError as e:
        raise_http(e)
    submitted = await run_in_threadpool(inspections.list_for_booking, booking_id)
    return {
        "booking": booking,
        "inspections": submitted,
        "status": {
            "pre": get_inspection_status(booking, submitted, "pre"),
            "post": get_inspection_status(booking, submitted, "post"),
        },
    }

@router.get("/inspections")
async def outstanding_inspections(user: dict = Depends(admin_only), inspections: InspectionService = Depends(get_inspection_service)):
    """Every approved booking still owing a pre- or post-trip inspection."""
    return await run_in_threadpool(inspections.todos_for_all)

@router.get("/history")
async def booking_history(
    on_date: Optional[date] = Query(None, alias="date"),
    q: Optional[str] = None,
    page: int = Query(1, ge=1),
    user: dict = Depends(admin_only),
    bookings: BookingService = Depends(get_booking_service),
):
    archived = await run_in_threadpool(bookings.archived_history)
    return paginate(filter_bookings(archived, on_date, q), page)

# --- 4. STAFF ACCOUNTS ---
@router.get("/staffs")
async def list_staffs(
    role: Optional[UserRole] = None,
    user: dict = Depends(admin_only),
    accounts: AccountService = Depends(get_account_service),
):
    users = await run_in_threadpool(accounts.list_users, role.value if role else None)
    return [u.model_dump(exclude={"password"}) for u in users]

@router.post("/staffs")
async def create_staff(
    data: CreateUserRequest,
    current_user: dict = Depends(get_current_user),
    accounts: AccountService = Depends(get_account_service),
):
    """
    Creates an account with a temporary password.
    The role check happens inside the service against the stored profile.
    """
    try:
        return await run_in_threadpool(accounts.create_user_with_role, current_user["uid"], data)
    except FleetError as e:
        raise_http(e)

@router.delete("/staffs/{uid}")
async def delete_staff(uid: str, current_user: dict = Depends(get_current_user), accounts: AccountService = Depends(get_account_service)):
    try:
        await run_in_threadpool(accounts.delete_user, current_user["uid"], uid)
        return {"message": "User deleted"}
    except FleetError as e:
        raise_http(e)
