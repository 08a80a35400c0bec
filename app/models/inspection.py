from pydantic import BaseModel, ConfigDict
from typing import Literal, Optional
from datetime import datetime

from app.models.booking import Booking

InspectionType = Literal["pre", "post"]

class InspectionStatus:
    SUBMITTED = "Submitted"
    PENDING = "Pending"
    NOT_SUBMITTED = "Not Submitted"

class PartInspection(BaseModel):
    functionalStatus: bool
    remark: Optional[str] = None

class InspectionParts(BaseModel):
    """The fixed checklist every inspection form covers."""
    remoteControl: PartInspection
    brakes: PartInspection
    steering: PartInspection
    operation: PartInspection
    engine: PartInspection
    panelInspection: PartInspection
    bumper: PartInspection
    doors: PartInspection
    roof: PartInspection
    exteriorLights: PartInspection
    safetyBelts: PartInspection
    airConditioning: PartInspection
    radio: PartInspection
    navigationSystem: PartInspection
    tires: PartInspection

class InspectionImages(BaseModel):
    vehicleLeft: Optional[str] = None
    vehicleRight: Optional[str] = None
    vehicleFront: Optional[str] = None
    vehicleRear: Optional[str] = None
    tyreFront: Optional[str] = None
    tyreRear: Optional[str] = None

class InspectionForm(BaseModel):
    """Fields submitted from the inspection form."""
    inspectionDate: datetime
    nextVehicleServiceDate: datetime
    vehicleMilleage: int
    parts: InspectionParts
    images: InspectionImages = InspectionImages()

class Inspection(InspectionForm):
    model_config = ConfigDict(extra="ignore")

    id: str
    inspectionFormType: InspectionType
    createdAt: Optional[datetime] = None
    updatedAt: Optional[datetime] = None
    booking: Booking

class InspectionTodo(BaseModel):
    booking: Booking
    needsPreInspection: bool
    needsPostInspection: bool
