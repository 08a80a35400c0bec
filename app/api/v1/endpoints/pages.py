from pathlib import Path

import requests
from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import HTMLResponse
from fastapi.templating import Jinja2Templates
from starlette.concurrency import run_in_threadpool

from app.api.deps import get_http_session, get_inspection_service
from app.api.v1.endpoints.auth import require_page_role
from app.api.v1.endpoints.images import embed_image
from app.api.v1.errors import raise_http
from app.core.exceptions import FleetError
from app.core.rbac import NAV_LINKS, Action, UserRole, check_permission
from app.services.inspections import InspectionService, build_inspection_report

router = APIRouter()
templates = Jinja2Templates(directory=str(Path(__file__).resolve().parents[3] / "templates"))

PORTAL_TITLES = {
    UserRole.STAFF: "Staff Dashboard",
    UserRole.RECEPTIONIST: "Receptionist Dashboard",
    UserRole.ADMIN: "Admin Dashboard",
}

def _render_portal(request: Request, user: dict, role: UserRole, todos=None):
    return templates.TemplateResponse(request, "portal.html", {
        "title": PORTAL_TITLES[role],
        "nav_links": NAV_LINKS[role],
        "user": user,
        "todos": todos or [],
    })

@router.get("/", response_class=HTMLResponse)
async def login_page(request: Request):
    return templates.TemplateResponse(request, "login.html", {})

@router.get("/staff", response_class=HTMLResponse)
async def staff_portal(
    request: Request,
    user: dict = Depends(require_page_role(UserRole.STAFF, redirect_to="/")),
    inspections: InspectionService = Depends(get_inspection_service),
):
    todos = await run_in_threadpool(inspections.todos_for_user, user["uid"])
    return _render_portal(request, user, UserRole.STAFF, todos)

@router.get("/receptionist", response_class=HTMLResponse)
async def receptionist_portal(request: Request, user: dict = Depends(require_page_role(UserRole.RECEPTIONIST, redirect_to="/"))):
    return _render_portal(request, user, UserRole.RECEPTIONIST)

@router.get("/admin", response_class=HTMLResponse)
async def admin_portal(
    request: Request,
    user: dict = Depends(require_page_role(UserRole.ADMIN, redirect_to="/")),
    inspections: InspectionService = Depends(get_inspection_service),
):
    todos = await run_in_threadpool(inspections.todos_for_all)
    return _render_portal(request, user, UserRole.ADMIN, todos)

@router.get("/inspections/{inspection_id}/report", response_class=HTMLResponse)
async def inspection_report(
    request: Request,
    inspection_id: str,
    user: dict = Depends(require_page_role(redirect_to="/")),
    inspections: InspectionService = Depends(get_inspection_service),
    http: requests.Session = Depends(get_http_session),
):
    """Printable inspection sheet with its photos embedded; the browser saves it as PDF."""
    try:
        inspection = await run_in_threadpool(inspections.get_inspection, inspection_id)
    except FleetError as e:
        raise_http(e)

    booked_by = inspection.booking.bookedBy
    if not check_permission(user["role"], Action.VIEW_ALL_BOOKINGS):
        if not booked_by or booked_by.id != user["uid"]:
            raise HTTPException(status_code=403, detail="Access denied")

    context = await run_in_threadpool(build_inspection_report, inspection, lambda url: embed_image(http, url))
    return templates.TemplateResponse(request, "inspection_report.html", context)
