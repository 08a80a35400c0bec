from pydantic import BaseModel, ConfigDict
from typing import Optional
from datetime import datetime

class VehicleStatus:
    AVAILABLE = "Available"
    IN_USE = "In Use"
    MAINTENANCE = "Maintenance"

class Vehicle(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    plateNumber: str
    brand: str
    model: str
    year: int
    type: str
    fuelType: str
    seatCapacity: int
    maintenanceStatus: bool = False
    manualMaintenanceMode: bool = False   # Forces Maintenance regardless of bookings
    createdAt: Optional[datetime] = None
    updatedAt: Optional[datetime] = None

class VehicleInput(BaseModel):
    plateNumber: str
    brand: str
    model: str
    year: int
    type: str = "Pickup Truck"
    fuelType: str = "Diesel"
    seatCapacity: int = 5
    manualMaintenanceMode: bool = False
