import logging
from contextlib import nullcontext
from typing import Any, Dict, List, Optional

import requests
from firebase_admin import auth as firebase_auth

from app.core.config import FIREBASE_API_KEY, HTTP_TIMEOUT, IDENTITY_TOOLKIT_URL
from app.core.exceptions import (
    AlreadyExistsError,
    AuthError,
    NotFoundError,
    PermissionDeniedError,
    UnauthenticatedError,
)
from app.core.rbac import UserRole
from app.db.firestore import DocumentStore
from app.models.user import CreateUserRequest, User
from app.services.session import AuthSessionStream, RoleCache

logger = logging.getLogger("fleet.accounts")

MIN_PASSWORD_LENGTH = 6

# --- ERROR MESSAGES ---

AUTH_ERROR_MESSAGES = {
    "auth/invalid-email": "Invalid email address format.",
    "auth/user-disabled": "This account has been disabled.",
    "auth/user-not-found": "No account found with this email.",
    "auth/wrong-password": "Incorrect password.",
    "auth/email-already-in-use": "An account with this email already exists.",
    "auth/weak-password": "Password should be at least 6 characters.",
    "auth/network-request-failed": "Network error. Please check your connection.",
    "auth/too-many-requests": "Too many attempts. Please try again later.",
    "auth/requires-recent-login": "Please sign in again to perform this action.",
}

# Identity Toolkit REST error codes -> client SDK codes
REST_ERROR_CODES = {
    "INVALID_EMAIL": "auth/invalid-email",
    "USER_DISABLED": "auth/user-disabled",
    "EMAIL_NOT_FOUND": "auth/user-not-found",
    "INVALID_PASSWORD": "auth/wrong-password",
    "INVALID_LOGIN_CREDENTIALS": "auth/wrong-password",
    "EMAIL_EXISTS": "auth/email-already-in-use",
    "WEAK_PASSWORD": "auth/weak-password",
    "TOO_MANY_ATTEMPTS_TRY_LATER": "auth/too-many-requests",
    "CREDENTIAL_TOO_OLD_LOGIN_AGAIN": "auth/requires-recent-login",
}

def get_auth_error_message(code: Optional[str]) -> str:
    return AUTH_ERROR_MESSAGES.get(code, "An error occurred. Please try again.")

def _rest_error_code(response: requests.Response) -> Optional[str]:
    try:
        message = response.json()["error"]["message"]
    except (ValueError, KeyError, TypeError):
        return None
    # e.g. "WEAK_PASSWORD : Password should be at least 6 characters"
    return REST_ERROR_CODES.get(message.split(" : ")[0].strip())

class AccountService:
    """
    Sign-in, password and user management against Firebase.

    Password checks go through the Identity Toolkit REST API, everything
    privileged through the Admin SDK.
    """

    def __init__(
        self,
        store: DocumentStore,
        auth_client=firebase_auth,
        *,
        http: requests.Session,
        api_key: Optional[str] = FIREBASE_API_KEY,
    ):
        self.store = store
        self.auth = auth_client
        self.http = http
        self.api_key = api_key

    def _identity_toolkit(self, method: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        url = f"{IDENTITY_TOOLKIT_URL}/accounts:{method}"
        try:
            response = self.http.post(url, params={"key": self.api_key}, json=payload, timeout=HTTP_TIMEOUT)
        except requests.RequestException as e:
            logger.error(f"Identity Toolkit {method} failed: {e}")
            raise AuthError(get_auth_error_message("auth/network-request-failed"))
        if not response.ok:
            code = _rest_error_code(response)
            logger.error(f"Identity Toolkit {method} rejected: {code or response.status_code}")
            raise AuthError(get_auth_error_message(code))
        return response.json()

    # --- SIGN IN / OUT ---
    def sign_in(self, email: str, password: str) -> Dict[str, Any]:
        """Returns {idToken, refreshToken, localId, email, expiresIn}."""
        return self._identity_toolkit("signInWithPassword", {
            "email": email,
            "password": password,
            "returnSecureToken": True,
        })

    def log_out(self, uid: str, cache: Optional[RoleCache] = None) -> None:
        if cache is not None:
            cache.invalidate()
        try:
            self.auth.revoke_refresh_tokens(uid)
        except Exception as e:
            logger.error(f"Error signing out {uid}: {e}")
            raise

    # --- PASSWORD MANAGEMENT ---
    def change_password(
        self,
        uid: str,
        email: str,
        current_password: str,
        new_password: str,
        stream: Optional[AuthSessionStream] = None,
    ) -> None:
        """
        Re-authenticates with the current password, sets the new one and
        clears the stored temporary password.
        """
        if len(new_password) < MIN_PASSWORD_LENGTH:
            raise AuthError(get_auth_error_message("auth/weak-password"))

        with stream.reauthenticating() if stream is not None else nullcontext():
            self.sign_in(email, current_password)
            try:
                self.auth.update_user(uid, password=new_password)
            except ValueError:
                raise AuthError(get_auth_error_message("auth/weak-password"))
            except Exception as e:
                logger.error(f"Error updating password for {uid}: {e}")
                raise AuthError(get_auth_error_message(None))

        self.store.update_document("users", uid, {"password": None})
        logger.info(f"Password changed for {uid}")

    def send_password_reset(self, email: str) -> None:
        self._identity_toolkit("sendOobCode", {"requestType": "PASSWORD_RESET", "email": email})

    # --- PROFILE ---
    def get_user(self, uid: str) -> User:
        doc = self.store.get_document("users", uid)
        if not doc:
            raise NotFoundError("User not found")
        return User(**doc)

    def update_profile(self, uid: str, first_name: str, last_name: str, phone_number: Optional[str] = None) -> User:
        changes = {"firstName": first_name, "lastName": last_name}
        if phone_number is not None:
            changes["phoneNumber"] = phone_number
        self.store.update_document("users", uid, changes)
        self.auth.update_user(uid, display_name=f"{first_name} {last_name}".strip())
        return self.get_user(uid)

    # --- USER MANAGEMENT (Admin only) ---
    def _require_admin(self, caller_uid: Optional[str], message: str) -> None:
        if not caller_uid:
            raise UnauthenticatedError(f"User must be authenticated to {message}")
        caller = self.store.get_document("users", caller_uid)
        if not caller or caller.get("role") != UserRole.ADMIN.value:
            raise PermissionDeniedError(f"Only admins can {message}")

    def create_user_with_role(self, caller_uid: Optional[str], data: CreateUserRequest) -> Dict[str, Any]:
        """
        Creates an account with a temporary password.
        The caller's role is re-read from the users collection, never trusted from the request.
        """
        self._require_admin(caller_uid, "create users")

        try:
            record = self.auth.create_user(
                email=data.email,
                password=data.password,
                display_name=f"{data.firstName} {data.lastName}",
            )
        except self.auth.EmailAlreadyExistsError:
            raise AlreadyExistsError("Email address is already in use")
        except Exception as e:
            logger.error(f"Error creating user: {e}")
            raise AuthError(f"Failed to create user: {e}")

        profile = data.model_dump(mode="json")
        self.store.set_document("users", record.uid, profile)
        self.auth.set_custom_user_claims(record.uid, {"role": profile["role"]})

        logger.info(f"{caller_uid} created {profile['role']} account {record.uid}")
        return {"success": True, "userId": record.uid, "tempPassword": data.password}

    def list_users(self, role: Optional[str] = None) -> List[User]:
        if role:
            docs = self.store.query_documents("users", [("role", "==", role)])
        else:
            docs = self.store.get_all_documents("users")
        return [User(**doc) for doc in docs]

    def delete_user(self, caller_uid: Optional[str], uid: str) -> None:
        self._require_admin(caller_uid, "delete users")
        if caller_uid == uid:
            raise PermissionDeniedError("You cannot delete your own account")
        try:
            self.auth.delete_user(uid)
        except self.auth.UserNotFoundError:
            logger.warning(f"Auth user {uid} already gone, removing profile only")
        self.store.delete_document("users", uid)
        logger.info(f"{caller_uid} deleted account {uid}")
