from enum import Enum
from typing import List, Dict, Iterable, Optional, Union

# --- 1. Define the Roles ---
class UserRole(str, Enum):
    STAFF = "Staff"                  # Requests bookings, submits inspections
    RECEPTIONIST = "Receptionist"    # Hands over and receives keys
    ADMIN = "Admin"                  # Approves bookings, manages vehicles & staff

# --- 2. Define the Actions (Privileges) ---
class Action(str, Enum):
    VIEW_DASHBOARD = "view_dashboard"
    REQUEST_BOOKING = "request_booking"
    SUBMIT_INSPECTION = "submit_inspection"
    VIEW_INSPECTIONS = "view_inspections"
    MANAGE_KEYS = "manage_keys"
    VIEW_ALL_BOOKINGS = "view_all_bookings"
    APPROVE_BOOKING = "approve_booking"
    MANAGE_VEHICLES = "manage_vehicles"
    MANAGE_USERS = "manage_users"

# --- 3. Role -> Allowed Actions ---
RBAC_POLICY: Dict[UserRole, List[Action]] = {

    UserRole.ADMIN: [
        Action.VIEW_DASHBOARD,
        Action.VIEW_ALL_BOOKINGS,
        Action.APPROVE_BOOKING,
        Action.VIEW_INSPECTIONS,
        Action.MANAGE_VEHICLES,
        Action.MANAGE_USERS
    ],

    UserRole.RECEPTIONIST: [
        Action.VIEW_DASHBOARD,
        Action.VIEW_ALL_BOOKINGS,
        Action.MANAGE_KEYS,
        Action.VIEW_INSPECTIONS
    ],

    UserRole.STAFF: [
        Action.VIEW_DASHBOARD,
        Action.REQUEST_BOOKING,
        Action.SUBMIT_INSPECTION
    ]
}

# --- 4. Portal navigation per role ---
NAV_LINKS: Dict[UserRole, List[Dict[str, str]]] = {
    UserRole.STAFF: [
        {"href": "/staff", "label": "Dashboard"},
        {"href": "/staff/bookings", "label": "My Bookings"},
        {"href": "/staff/history", "label": "My Booking History"},
    ],
    UserRole.RECEPTIONIST: [
        {"href": "/receptionist", "label": "Dashboard"},
        {"href": "/receptionist/bookings", "label": "Manage Bookings"},
        {"href": "/receptionist/history", "label": "Booking History"},
    ],
    UserRole.ADMIN: [
        {"href": "/admin", "label": "Dashboard"},
        {"href": "/admin/vehicles", "label": "Manage Vehicles"},
        {"href": "/admin/bookings", "label": "Manage Bookings"},
        {"href": "/admin/staffs", "label": "Manage Staffs"},
        {"href": "/admin/history", "label": "Booking History"},
    ],
}

RoleRequirement = Optional[Union[str, UserRole, Iterable[Union[str, UserRole]]]]


def check_permission(role: str, action: Action) -> bool:
    """Helper function to check if a role is allowed to perform an action."""
    allowed_actions = RBAC_POLICY.get(role, [])
    return action in allowed_actions


def role_satisfies(role: Optional[str], required: RoleRequirement) -> bool:
    """True when no role is required, or `role` is the required one / one of the required set."""
    if required is None:
        return True
    if isinstance(required, (str, UserRole)):
        required = [required]
    allowed = {UserRole(r).value if isinstance(r, UserRole) else r for r in required}
    return role in allowed
