import logging
from typing import Callable, Iterable, List, Optional, Sequence

from app.core.exceptions import InspectionNotAllowedError, NotFoundError
from app.db.firestore import DocumentStore
from app.models.booking import Booking
from app.models.inspection import (
    Inspection,
    InspectionForm,
    InspectionStatus,
    InspectionTodo,
    InspectionType,
)
from app.models.user import User

logger = logging.getLogger("fleet.inspections")

PART_LABELS = {
    "remoteControl": "Remote control",
    "brakes": "Brakes",
    "steering": "Steering",
    "operation": "Auto/Manual /Transaxle Operation",
    "engine": "Engine Accelerates and Cruises",
    "panelInspection": "Body Panel Inspection",
    "bumper": "Bumper Inspection (Front & Back)",
    "doors": "Doors Inspection",
    "roof": "Roof Inspection",
    "exteriorLights": "Exterior Lights (Back/Side/Front)",
    "safetyBelts": "Safety Belts",
    "airConditioning": "Air Conditioning System",
    "radio": "Radio",
    "navigationSystem": "Navigation System",
    "tires": "Tires / Wheels Condition",
}

IMAGE_LABELS = {
    "vehicleLeft": "Left View",
    "vehicleRight": "Right View",
    "vehicleFront": "Front View",
    "vehicleRear": "Rear View",
    "tyreFront": "Front Tyre",
    "tyreRear": "Rear Tyre",
}

REPORT_TABLE_TITLES = {"pre": "BEFORE USED", "post": "AFTER USED"}

def has_inspection(inspections: Iterable[Inspection], booking_id: str, form_type: InspectionType) -> bool:
    """Whether an inspection of `form_type` was submitted for the booking."""
    return any(
        i.booking.id == booking_id and i.inspectionFormType == form_type
        for i in inspections
    )

def get_inspection_todos(bookings: Iterable[Booking], inspections: Sequence[Inspection]) -> List[InspectionTodo]:
    """
    Inspections a user still has to submit, one entry per booking.

    Rules:
    1. Booking must be approved (bookingStatus true, no rejectionReason)
    2. Pre-trip inspection comes first; while it is missing nothing else is asked for
    3. Post-trip inspection only becomes due after key collection
    """
    todos = []
    for booking in bookings:
        if not booking.is_approved:
            continue

        needs_pre = False
        needs_post = False
        if not has_inspection(inspections, booking.id, "pre"):
            needs_pre = True
        elif not has_inspection(inspections, booking.id, "post") and booking.keyCollectionStatus:
            needs_post = True

        if needs_pre or needs_post:
            todos.append(InspectionTodo(
                booking=booking,
                needsPreInspection=needs_pre,
                needsPostInspection=needs_post,
            ))
    return todos

def get_inspection_status(booking: Booking, inspections: Iterable[Inspection], form_type: InspectionType) -> str:
    """Display state of one inspection slot: Submitted, Pending or Not Submitted."""
    if not booking.is_approved:
        return InspectionStatus.NOT_SUBMITTED

    if has_inspection(inspections, booking.id, form_type):
        return InspectionStatus.SUBMITTED

    if form_type == "pre":
        return InspectionStatus.PENDING

    # post-trip: only after the keys were collected
    return InspectionStatus.PENDING if booking.keyCollectionStatus else InspectionStatus.NOT_SUBMITTED

def build_inspection_report(inspection: Inspection, embed: Callable[[str], Optional[str]]) -> dict:
    """
    Context for the printable inspection report.

    Checklist rows follow PART_LABELS order. Each photo goes through `embed`;
    photos it cannot turn into an image are listed without a picture.
    """
    rows = []
    for name, label in PART_LABELS.items():
        part = getattr(inspection.parts, name)
        rows.append({"label": label, "functional": part.functionalStatus, "remark": part.remark or ""})

    images = []
    for name, label in IMAGE_LABELS.items():
        url = getattr(inspection.images, name)
        if url:
            images.append({"label": label, "src": embed(url)})

    return {
        "inspection": inspection,
        "booking": inspection.booking,
        "table_title": REPORT_TABLE_TITLES[inspection.inspectionFormType],
        "rows": rows,
        "images": images,
    }

class InspectionService:
    def __init__(self, store: DocumentStore):
        self.store = store

    def _booking(self, booking_id: str) -> Booking:
        doc = self.store.get_document("bookings", booking_id)
        if not doc:
            raise NotFoundError("Booking not found")
        return Booking(**doc)

    def get_inspection(self, inspection_id: str) -> Inspection:
        doc = self.store.get_document("inspections", inspection_id)
        if not doc:
            raise NotFoundError("Inspection not found")
        return Inspection(**doc)

    def list_all(self) -> List[Inspection]:
        return [Inspection(**doc) for doc in self.store.get_all_documents("inspections")]

    def list_for_booking(self, booking_id: str) -> List[Inspection]:
        docs = self.store.query_documents("inspections", [("booking.id", "==", booking_id)])
        return [Inspection(**doc) for doc in docs]

    def status_for_booking(self, booking_id: str) -> dict:
        booking = self._booking(booking_id)
        inspections = self.list_for_booking(booking_id)
        return {
            "pre": get_inspection_status(booking, inspections, "pre"),
            "post": get_inspection_status(booking, inspections, "post"),
        }

    def todos_for_user(self, uid: str) -> List[InspectionTodo]:
        bookings = [
            Booking(**doc)
            for doc in self.store.query_documents("bookings", [("bookedBy.id", "==", uid)])
        ]
        return get_inspection_todos(bookings, self.list_all())

    def todos_for_all(self) -> List[InspectionTodo]:
        bookings = [Booking(**doc) for doc in self.store.get_all_documents("bookings")]
        return get_inspection_todos(bookings, self.list_all())

    def submit_inspection(self, booking_id: str, form_type: InspectionType, form: InspectionForm, submitted_by: User) -> Inspection:
        """
        Stores an inspection if the slot is currently open.
        A slot that is Submitted or Not Submitted is refused, so each booking
        ends up with at most one pre and one post inspection.
        """
        booking = self._booking(booking_id)
        if booking.bookedBy and submitted_by.role == "Staff" and booking.bookedBy.id != submitted_by.id:
            raise InspectionNotAllowedError("You can only inspect your own bookings")

        status = get_inspection_status(booking, self.list_for_booking(booking_id), form_type)
        if status == InspectionStatus.SUBMITTED:
            raise InspectionNotAllowedError(f"A {form_type}-trip inspection was already submitted for {booking_id}")
        if status != InspectionStatus.PENDING:
            raise InspectionNotAllowedError(f"{form_type.capitalize()}-trip inspection is not open for {booking_id}")

        data = form.model_dump()
        data.update({
            "inspectionFormType": form_type,
            "booking": booking.model_dump(),
        })
        inspection_id = self.store.create_document("inspections", data)
        logger.info(f"{submitted_by.email} submitted {form_type}-trip inspection {inspection_id} for {booking_id}")
        return Inspection(id=inspection_id, **data)
