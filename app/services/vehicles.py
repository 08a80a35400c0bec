import logging
from datetime import date
from typing import Dict, List, Optional

from app.core.exceptions import AlreadyExistsError, NotFoundError, ValidationError
from app.db.firestore import DocumentStore
from app.models.booking import Booking
from app.models.vehicle import Vehicle, VehicleInput, VehicleStatus
from app.services.availability import get_next_booking_date, get_vehicle_status

logger = logging.getLogger("fleet.vehicles")

class VehicleService:
    def __init__(self, store: DocumentStore):
        self.store = store

    def get_vehicle(self, vehicle_id: str) -> Vehicle:
        doc = self.store.get_document("vehicles", vehicle_id)
        if not doc:
            raise NotFoundError("Vehicle not found")
        return Vehicle(**doc)

    def list_vehicles(self) -> List[Vehicle]:
        return [Vehicle(**doc) for doc in self.store.get_all_documents("vehicles")]

    def create_vehicle(self, data: VehicleInput) -> Vehicle:
        plate = data.plateNumber.strip().upper()
        if self.store.query_documents("vehicles", [("plateNumber", "==", plate)]):
            raise AlreadyExistsError(f"A vehicle with plate {plate} already exists")

        payload = data.model_dump()
        payload["plateNumber"] = plate
        payload["maintenanceStatus"] = data.manualMaintenanceMode
        vehicle_id = self.store.create_document("vehicles", payload)
        logger.info(f"Vehicle {plate} registered as {vehicle_id}")
        return Vehicle(id=vehicle_id, **payload)

    def update_vehicle(self, vehicle_id: str, data: VehicleInput) -> Vehicle:
        self.get_vehicle(vehicle_id)
        payload = data.model_dump()
        payload["plateNumber"] = data.plateNumber.strip().upper()
        payload["maintenanceStatus"] = data.manualMaintenanceMode
        self.store.update_document("vehicles", vehicle_id, payload)
        return self.get_vehicle(vehicle_id)

    def set_manual_maintenance(self, vehicle_id: str, enabled: bool) -> Vehicle:
        self.get_vehicle(vehicle_id)
        self.store.update_document("vehicles", vehicle_id, {
            "manualMaintenanceMode": enabled,
            "maintenanceStatus": enabled,
        })
        return self.get_vehicle(vehicle_id)

    def delete_vehicle(self, vehicle_id: str, bookings: List[Booking]) -> None:
        self.get_vehicle(vehicle_id)
        active = [
            b for b in bookings
            if b.vehicle.id == vehicle_id and not b.is_rejected and not b.keyReturnStatus
        ]
        if active:
            raise ValidationError("Vehicle has open bookings and cannot be deleted")
        self.store.delete_document("vehicles", vehicle_id)
        logger.info(f"Vehicle {vehicle_id} deleted")

    def fleet_overview(self, bookings: List[Booking], today: Optional[date] = None) -> Dict[str, object]:
        """Per-vehicle live status plus counts for the admin dashboard."""
        rows = []
        for vehicle in self.list_vehicles():
            next_booking = get_next_booking_date(vehicle, bookings, today)
            rows.append({
                "vehicle": vehicle,
                "status": get_vehicle_status(vehicle, bookings, today),
                "nextBooking": next_booking.isoformat() if next_booking else None,
            })
        return {
            "vehicles": rows,
            "stats": {
                "total": len(rows),
                "available": sum(1 for r in rows if r["status"] == VehicleStatus.AVAILABLE),
                "inUse": sum(1 for r in rows if r["status"] == VehicleStatus.IN_USE),
                "maintenance": sum(1 for r in rows if r["status"] == VehicleStatus.MAINTENANCE),
            },
        }
