import sys, pathlib
import copy
import itertools
from datetime import datetime, timezone

ROOT = pathlib.Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

import pytest
from fastapi.testclient import TestClient

from app.api import deps
from app.models.booking import Booking
from app.models.inspection import Inspection
from app.services.session import SessionRegistry


class InMemoryStore:
    """Same surface as DocumentStore, backed by dicts."""

    def __init__(self):
        self.collections = {}
        self.reads = []
        self._ids = itertools.count(1)

    def _col(self, name):
        return self.collections.setdefault(name, {})

    def create_document(self, collection, data):
        doc_id = f"{collection}-{next(self._ids)}"
        self.set_document(collection, doc_id, data)
        return doc_id

    def set_document(self, collection, document_id, data):
        now = datetime.now(timezone.utc)
        self._col(collection)[document_id] = copy.deepcopy({**data, "createdAt": now, "updatedAt": now})

    def get_document(self, collection, document_id):
        self.reads.append((collection, document_id))
        doc = self._col(collection).get(document_id)
        return {"id": document_id, **copy.deepcopy(doc)} if doc is not None else None

    def get_all_documents(self, collection):
        return [{"id": k, **copy.deepcopy(v)} for k, v in self._col(collection).items()]

    def query_documents(self, collection, filters=(), order_by=None, direction="ASCENDING", limit=None):
        def value_at(doc, path):
            for part in path.split("."):
                if not isinstance(doc, dict):
                    return None
                doc = doc.get(part)
            return doc

        docs = [
            d for d in self.get_all_documents(collection)
            if all(op == "==" and value_at(d, field) == value for field, op, value in filters)
        ]
        return docs[:limit] if limit else docs

    def get_documents_by_ids(self, collection, document_ids):
        return [d for d in (self.get_document(collection, i) for i in document_ids) if d]

    def update_document(self, collection, document_id, data):
        if document_id not in self._col(collection):
            raise KeyError(f"{collection}/{document_id}")
        self._col(collection)[document_id].update(copy.deepcopy(data))

    def delete_document(self, collection, document_id):
        self._col(collection).pop(document_id, None)


class FailingStore(InMemoryStore):
    def get_document(self, collection, document_id):
        raise ConnectionError("firestore unavailable")


# --- DATA BUILDERS ---

def make_user(uid="staff-1", role="Staff", email=None, **extra):
    return {"id": uid, "email": email or f"{uid}@example.com", "firstName": uid, "lastName": "Tester", "role": role, **extra}

def make_vehicle(vehicle_id="veh-1", **extra):
    data = {
        "id": vehicle_id,
        "plateNumber": "ABC 1234",
        "brand": "Toyota",
        "model": "Hilux",
        "year": 2022,
        "type": "Pickup Truck",
        "fuelType": "Diesel",
        "seatCapacity": 5,
        "maintenanceStatus": False,
    }
    data.update(extra)
    return data

def make_booking(booking_id="BK-AAAAAAAA1", approved=True, keys=False, returned=False, reason=None, vehicle=None, booked_by="staff-1", start="2026-10-20", end="2026-10-21", **extra):
    data = {
        "id": booking_id,
        "project": "Bridge Maintenance",
        "destination": "Penang",
        "passengers": 2,
        "bookingStatus": approved,
        "keyCollectionStatus": keys,
        "keyReturnStatus": returned,
        "bookingDate": f"{start}T09:00:00",
        "returnDate": f"{end}T17:00:00",
        "bookedBy": make_user(booked_by),
        "vehicle": vehicle or make_vehicle(),
        "rejectionReason": reason,
    }
    data.update(extra)
    return Booking(**data)

PARTS = [
    "remoteControl", "brakes", "steering", "operation", "engine", "panelInspection", "bumper",
    "doors", "roof", "exteriorLights", "safetyBelts", "airConditioning", "radio",
    "navigationSystem", "tires",
]

def make_form(**extra):
    data = {
        "inspectionDate": "2026-10-20T08:00:00",
        "nextVehicleServiceDate": "2027-01-20T08:00:00",
        "vehicleMilleage": 42000,
        "parts": {name: {"functionalStatus": True} for name in PARTS},
        "images": {"vehicleFront": "https://storage.example/front.jpg"},
    }
    data.update(extra)
    return data

def make_inspection(booking, form_type="pre", inspection_id=None):
    return Inspection(
        id=inspection_id or f"insp-{booking.id}-{form_type}",
        inspectionFormType=form_type,
        booking=booking,
        **make_form(),
    )


# --- HTTP FAKES ---

class FakeResponse:
    def __init__(self, status_code=200, payload=None, content=b"", headers=None):
        self.status_code = status_code
        self.ok = status_code < 400
        self._payload = payload or {}
        self.content = content
        self.headers = headers or {}

    def json(self):
        return self._payload


class FakeHttp:
    """Records Identity Toolkit calls; answers from a {method: response} table."""

    def __init__(self, responses=None, stream=None):
        self.responses = responses or {}
        self.calls = []
        self.stream = stream
        self.reauth_seen = []

    def post(self, url, params=None, json=None, timeout=None):
        method = url.rsplit(":", 1)[-1]
        self.calls.append((method, params, json))
        if self.stream is not None:
            self.reauth_seen.append(self.stream.is_reauthenticating)
        response = self.responses.get(method, FakeResponse())
        if isinstance(response, Exception):
            raise response
        return response


# --- FIXTURES ---

@pytest.fixture()
def store():
    return InMemoryStore()


class FakeAuth:
    """Stands in for firebase_admin.auth."""

    class EmailAlreadyExistsError(Exception):
        pass

    class UserNotFoundError(Exception):
        pass

    def __init__(self):
        self.tokens = {}
        self.created = []
        self.claims = {}
        self.updated = []
        self.revoked = []
        self.deleted = []
        self.existing_emails = set()

    def verify_id_token(self, token):
        if token not in self.tokens:
            raise ValueError("invalid token")
        return self.tokens[token]

    def create_user(self, email, password, display_name):
        if email in self.existing_emails:
            raise self.EmailAlreadyExistsError(email)
        self.existing_emails.add(email)
        uid = f"uid-{len(self.created) + 1}"
        self.created.append({"uid": uid, "email": email, "display_name": display_name})
        return type("UserRecord", (), {"uid": uid})()

    def set_custom_user_claims(self, uid, claims):
        self.claims[uid] = claims

    def update_user(self, uid, **kwargs):
        if "password" in kwargs and len(kwargs["password"]) < 6:
            raise ValueError("password too short")
        self.updated.append((uid, kwargs))

    def revoke_refresh_tokens(self, uid):
        self.revoked.append(uid)

    def delete_user(self, uid):
        self.deleted.append(uid)


@pytest.fixture()
def fake_auth():
    return FakeAuth()


@pytest.fixture()
def client(store, fake_auth):
    from app.main import app

    sessions = SessionRegistry()
    app.dependency_overrides[deps.get_document_store] = lambda: store
    app.dependency_overrides[deps.get_auth_client] = lambda: fake_auth
    app.dependency_overrides[deps.get_sessions] = lambda: sessions
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture()
def login_as(store, fake_auth):
    """Registers a user profile and a valid token; returns auth headers."""
    def _login(uid, role):
        user = make_user(uid, role)
        store.set_document("users", uid, {k: v for k, v in user.items() if k != "id"})
        token = f"token-{uid}"
        fake_auth.tokens[token] = {"uid": uid, "email": user["email"]}
        return {"Authorization": f"Bearer {token}"}
    return _login
