import sys
import os

# Add the parent directory to the path so we can import our models
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from app.db.firestore import get_store
from app.models.user import User
from app.models.vehicle import VehicleInput
from app.core.rbac import UserRole
from app.services.vehicles import VehicleService

SEED_VEHICLES = [
    VehicleInput(plateNumber="ABC 1234", brand="Toyota", model="Hilux", year=2022),
    VehicleInput(plateNumber="DEF 5678", brand="Ford", model="Ranger", year=2021),
    VehicleInput(plateNumber="GHI 9012", brand="Nissan", model="Navara", year=2023),
    VehicleInput(plateNumber="JKL 3456", brand="Isuzu", model="D-Max", year=2020),
    VehicleInput(plateNumber="MNO 7890", brand="Mitsubishi", model="Triton", year=2023),
]

def seed_portal(admin_uid: str, admin_email: str):
    print("Seeding Fleet Portal...")
    store = get_store()

    # 1. The first Admin profile
    # Note: admin_uid must match an existing Firebase Auth account
    # created in the console; later accounts are created from the portal.
    admin = User(id=admin_uid, email=admin_email, firstName="Fleet", lastName="Admin", role=UserRole.ADMIN)
    store.set_document("users", admin_uid, admin.model_dump(mode="json", exclude={"id", "createdAt", "updatedAt"}))
    print(f"Admin profile created: {admin_email}")

    # 2. Initial vehicle roster
    vehicles = VehicleService(store)
    existing = {v.plateNumber for v in vehicles.list_vehicles()}
    for vehicle in SEED_VEHICLES:
        if vehicle.plateNumber in existing:
            continue
        created = vehicles.create_vehicle(vehicle)
        print(f"Vehicle added: {created.brand} {created.model} ({created.plateNumber})")

if __name__ == "__main__":
    if len(sys.argv) != 3:
        sys.exit("usage: python scripts/seed_data.py <admin-uid> <admin-email>")
    seed_portal(sys.argv[1], sys.argv[2])
