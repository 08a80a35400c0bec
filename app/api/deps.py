import requests
from fastapi import Depends
from firebase_admin import auth as firebase_auth

from app.db.firestore import DocumentStore, get_store, initialize_app
from app.services.accounts import AccountService
from app.services.bookings import BookingService
from app.services.inspections import InspectionService
from app.services.session import SessionRegistry
from app.services.vehicles import VehicleService

_sessions = SessionRegistry()

def get_sessions() -> SessionRegistry:
    return _sessions

def get_document_store() -> DocumentStore:
    return get_store()

def get_auth_client():
    initialize_app()
    return firebase_auth

def get_http_session():
    """One requests session per request, closed once the response is sent."""
    with requests.Session() as http:
        yield http

def get_token_verifier(auth_client=Depends(get_auth_client)):
    """Callable turning an ID token into its decoded claims."""
    return auth_client.verify_id_token

# --- SERVICES ---
def get_account_service(
    store: DocumentStore = Depends(get_document_store),
    auth_client=Depends(get_auth_client),
    http: requests.Session = Depends(get_http_session),
) -> AccountService:
    return AccountService(store, auth_client=auth_client, http=http)

def get_booking_service(store: DocumentStore = Depends(get_document_store)) -> BookingService:
    return BookingService(store)

def get_vehicle_service(store: DocumentStore = Depends(get_document_store)) -> VehicleService:
    return VehicleService(store)

def get_inspection_service(store: DocumentStore = Depends(get_document_store)) -> InspectionService:
    return InspectionService(store)
