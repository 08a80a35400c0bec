import logging
import os
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Tuple

import firebase_admin
from firebase_admin import credentials, firestore

from app.core.config import PROJECT_ID, SA_KEY_PATH

logger = logging.getLogger("fleet.firestore")

Filter = Tuple[str, str, Any]

def initialize_app():
    if not firebase_admin._apps:
        # 1. Local Dev: Use Key File if it exists
        if SA_KEY_PATH and os.path.exists(SA_KEY_PATH):
            cred = credentials.Certificate(SA_KEY_PATH)
            firebase_admin.initialize_app(cred, {'projectId': PROJECT_ID})
            logger.info(f"Connected to Firebase (Key): {PROJECT_ID}")

        # 2. Production (Cloud Run): Use Default Identity
        else:
            firebase_admin.initialize_app(options={'projectId': PROJECT_ID})
            logger.info(f"Connected to Firebase (ADC): {PROJECT_ID}")
    return firebase_admin.get_app()

def _now() -> datetime:
    return datetime.now(timezone.utc)

class DocumentStore:
    """
    Thin CRUD layer over a Firestore client.

    Every document comes back as a plain dict with its id under "id".
    Writes stamp createdAt/updatedAt the way the web client does.
    """

    def __init__(self, client=None):
        self._client = client

    @property
    def client(self):
        if self._client is None:
            initialize_app()
            self._client = firestore.client()
        return self._client

    # --- CREATE ---
    def create_document(self, collection: str, data: Dict[str, Any]) -> str:
        """Adds a document with an auto-generated id and returns that id."""
        now = _now()
        try:
            _, doc_ref = self.client.collection(collection).add({**data, "createdAt": now, "updatedAt": now})
            return doc_ref.id
        except Exception as e:
            logger.error(f"Error creating document in {collection}: {e}")
            raise

    def set_document(self, collection: str, document_id: str, data: Dict[str, Any]) -> None:
        now = _now()
        try:
            self.client.collection(collection).document(document_id).set(
                {**data, "createdAt": now, "updatedAt": now}
            )
        except Exception as e:
            logger.error(f"Error setting document {collection}/{document_id}: {e}")
            raise

    # --- READ ---
    def get_document(self, collection: str, document_id: str) -> Optional[Dict[str, Any]]:
        """Returns the document, or None when it does not exist."""
        try:
            doc = self.client.collection(collection).document(document_id).get()
        except Exception as e:
            logger.error(f"Error getting document {collection}/{document_id}: {e}")
            raise
        if not doc.exists:
            return None
        return {"id": doc.id, **doc.to_dict()}

    def get_all_documents(self, collection: str) -> List[Dict[str, Any]]:
        try:
            return [{"id": doc.id, **doc.to_dict()} for doc in self.client.collection(collection).stream()]
        except Exception as e:
            logger.error(f"Error getting all documents from {collection}: {e}")
            raise

    def query_documents(
        self,
        collection: str,
        filters: Iterable[Filter] = (),
        order_by: Optional[str] = None,
        direction: str = "ASCENDING",
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        try:
            query = self.client.collection(collection)
            for field, op, value in filters:
                query = query.where(field, op, value)
            if order_by:
                query = query.order_by(order_by, direction=direction)
            if limit:
                query = query.limit(limit)
            return [{"id": doc.id, **doc.to_dict()} for doc in query.stream()]
        except Exception as e:
            logger.error(f"Error querying {collection}: {e}")
            raise

    def get_documents_by_ids(self, collection: str, document_ids: Iterable[str]) -> List[Dict[str, Any]]:
        docs = (self.get_document(collection, doc_id) for doc_id in document_ids)
        return [doc for doc in docs if doc is not None]

    # --- UPDATE ---
    def update_document(self, collection: str, document_id: str, data: Dict[str, Any]) -> None:
        try:
            self.client.collection(collection).document(document_id).update({**data, "updatedAt": _now()})
        except Exception as e:
            logger.error(f"Error updating document {collection}/{document_id}: {e}")
            raise

    # --- DELETE ---
    def delete_document(self, collection: str, document_id: str) -> None:
        try:
            self.client.collection(collection).document(document_id).delete()
        except Exception as e:
            logger.error(f"Error deleting document {collection}/{document_id}: {e}")
            raise

_store: Optional[DocumentStore] = None

def get_store() -> DocumentStore:
    """Process-wide store; the Firestore client is created on first use."""
    global _store
    if _store is None:
        _store = DocumentStore()
    return _store
