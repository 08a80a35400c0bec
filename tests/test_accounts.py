import pytest
import requests

from conftest import FakeHttp, FakeResponse, make_user
from app.core.exceptions import (
    AlreadyExistsError,
    AuthError,
    PermissionDeniedError,
    UnauthenticatedError,
)
from app.models.user import CreateUserRequest
from app.services.accounts import AccountService, get_auth_error_message
from app.services.session import AuthSessionStream, MemoryRoleCache


def rest_error(message, status_code=400):
    return FakeResponse(status_code, {"error": {"code": status_code, "message": message}})


def save_user(store, uid, role, **extra):
    user = make_user(uid, role, **extra)
    store.set_document("users", uid, {k: v for k, v in user.items() if k != "id"})


def new_user(**extra):
    data = {
        "email": "driver@example.com",
        "password": "Temp#2026",
        "firstName": "Aina",
        "lastName": "Rahman",
        "phoneNumber": "+60123456789",
        "role": "Staff",
    }
    data.update(extra)
    return CreateUserRequest(**data)


# --- SIGN IN ---

def test_sign_in_posts_credentials(store, fake_auth):
    http = FakeHttp({"signInWithPassword": FakeResponse(200, {"idToken": "tok", "localId": "u1"})})
    service = AccountService(store, fake_auth, http=http, api_key="key-123")

    assert service.sign_in("a@example.com", "secret1")["idToken"] == "tok"
    method, params, payload = http.calls[0]
    assert method == "signInWithPassword"
    assert params == {"key": "key-123"}
    assert payload == {"email": "a@example.com", "password": "secret1", "returnSecureToken": True}


@pytest.mark.parametrize("rest_message, expected", [
    ("INVALID_LOGIN_CREDENTIALS", "Incorrect password."),
    ("EMAIL_NOT_FOUND", "No account found with this email."),
    ("USER_DISABLED", "This account has been disabled."),
    ("TOO_MANY_ATTEMPTS_TRY_LATER : Access temporarily disabled", "Too many attempts. Please try again later."),
    ("SOMETHING_NEW", "An error occurred. Please try again."),
])
def test_sign_in_errors_map_to_user_messages(store, fake_auth, rest_message, expected):
    http = FakeHttp({"signInWithPassword": rest_error(rest_message)})
    with pytest.raises(AuthError) as exc:
        AccountService(store, fake_auth, http=http).sign_in("a@example.com", "bad")
    assert exc.value.message == expected


def test_network_failure_is_reported_as_auth_error(store, fake_auth):
    http = FakeHttp({"signInWithPassword": requests.ConnectionError("down")})
    with pytest.raises(AuthError, match="Network error"):
        AccountService(store, fake_auth, http=http).sign_in("a@example.com", "secret1")


def test_unknown_error_code_falls_back_to_generic_message():
    assert get_auth_error_message("auth/weak-password") == "Password should be at least 6 characters."
    assert get_auth_error_message("auth/brand-new") == "An error occurred. Please try again."
    assert get_auth_error_message(None) == "An error occurred. Please try again."


def test_log_out_drops_cached_role_and_revokes_tokens(store, fake_auth):
    cache = MemoryRoleCache()
    cache.put("u1", "Admin")
    AccountService(store, fake_auth, http=FakeHttp()).log_out("u1", cache)
    assert cache.entry is None
    assert fake_auth.revoked == ["u1"]


# --- PASSWORDS ---

def test_change_password_reauthenticates_and_clears_temporary_password(store, fake_auth):
    save_user(store, "u1", "Staff", password="Temp#2026")
    stream = AuthSessionStream()
    http = FakeHttp(stream=stream)
    service = AccountService(store, fake_auth, http=http)

    service.change_password("u1", "u1@example.com", "Temp#2026", "n3w-secret", stream=stream)

    assert http.calls[0][0] == "signInWithPassword"
    assert http.reauth_seen == [True]
    assert not stream.is_reauthenticating
    assert fake_auth.updated == [("u1", {"password": "n3w-secret"})]
    assert service.get_user("u1").has_temporary_password is False


def test_change_password_rejects_short_password_before_any_call(store, fake_auth):
    http = FakeHttp()
    with pytest.raises(AuthError, match="at least 6 characters"):
        AccountService(store, fake_auth, http=http).change_password("u1", "u1@example.com", "old", "12345")
    assert http.calls == []


def test_change_password_with_wrong_current_password(store, fake_auth):
    save_user(store, "u1", "Staff", password="Temp#2026")
    http = FakeHttp({"signInWithPassword": rest_error("INVALID_PASSWORD")})
    service = AccountService(store, fake_auth, http=http)

    with pytest.raises(AuthError, match="Incorrect password"):
        service.change_password("u1", "u1@example.com", "wrong", "n3w-secret")

    assert fake_auth.updated == []
    assert service.get_user("u1").has_temporary_password


def test_password_reset_requests_oob_code(store, fake_auth):
    http = FakeHttp()
    AccountService(store, fake_auth, http=http).send_password_reset("a@example.com")
    assert http.calls[0][0] == "sendOobCode"
    assert http.calls[0][2] == {"requestType": "PASSWORD_RESET", "email": "a@example.com"}


def test_update_profile_syncs_display_name(store, fake_auth):
    save_user(store, "u1", "Staff")
    user = AccountService(store, fake_auth, http=FakeHttp()).update_profile("u1", "Aina", "Rahman", "+6011")
    assert user.full_name == "Aina Rahman"
    assert user.phoneNumber == "+6011"
    assert fake_auth.updated == [("u1", {"display_name": "Aina Rahman"})]


# --- USER MANAGEMENT ---

def test_create_user_requires_signed_in_caller(store, fake_auth):
    with pytest.raises(UnauthenticatedError, match="User must be authenticated to create users"):
        AccountService(store, fake_auth, http=FakeHttp()).create_user_with_role(None, new_user())


@pytest.mark.parametrize("caller_role", ["Staff", "Receptionist"])
def test_create_user_requires_admin_profile(store, fake_auth, caller_role):
    save_user(store, "caller", caller_role)
    with pytest.raises(PermissionDeniedError, match="Only admins can create users"):
        AccountService(store, fake_auth, http=FakeHttp()).create_user_with_role("caller", new_user())
    assert fake_auth.created == []


def test_create_user_with_unknown_caller_is_denied(store, fake_auth):
    with pytest.raises(PermissionDeniedError):
        AccountService(store, fake_auth, http=FakeHttp()).create_user_with_role("ghost", new_user())


def test_admin_creates_user_with_role(store, fake_auth):
    save_user(store, "admin-1", "Admin")
    service = AccountService(store, fake_auth, http=FakeHttp())

    result = service.create_user_with_role("admin-1", new_user(role="Receptionist"))

    assert result == {"success": True, "userId": "uid-1", "tempPassword": "Temp#2026"}
    assert fake_auth.created[0]["display_name"] == "Aina Rahman"
    assert fake_auth.claims == {"uid-1": {"role": "Receptionist"}}
    created = service.get_user("uid-1")
    assert created.role == "Receptionist"
    assert created.has_temporary_password


def test_create_user_with_taken_email(store, fake_auth):
    save_user(store, "admin-1", "Admin")
    fake_auth.existing_emails.add("driver@example.com")
    with pytest.raises(AlreadyExistsError, match="Email address is already in use"):
        AccountService(store, fake_auth, http=FakeHttp()).create_user_with_role("admin-1", new_user())


def test_create_user_other_failures_are_wrapped(store, fake_auth, monkeypatch):
    save_user(store, "admin-1", "Admin")

    def broken(**kwargs):
        raise RuntimeError("quota exceeded")

    monkeypatch.setattr(fake_auth, "create_user", broken)
    with pytest.raises(AuthError, match="Failed to create user: quota exceeded"):
        AccountService(store, fake_auth, http=FakeHttp()).create_user_with_role("admin-1", new_user())
    assert store.get_all_documents("users")[0]["id"] == "admin-1"
    assert len(store.get_all_documents("users")) == 1


def test_list_users_by_role(store, fake_auth):
    save_user(store, "admin-1", "Admin")
    save_user(store, "staff-1", "Staff")
    save_user(store, "staff-2", "Staff")
    service = AccountService(store, fake_auth, http=FakeHttp())
    assert sorted(u.id for u in service.list_users("Staff")) == ["staff-1", "staff-2"]
    assert len(service.list_users()) == 3


def test_admin_cannot_delete_self(store, fake_auth):
    save_user(store, "admin-1", "Admin")
    with pytest.raises(PermissionDeniedError):
        AccountService(store, fake_auth, http=FakeHttp()).delete_user("admin-1", "admin-1")


def test_delete_user_tolerates_missing_auth_account(store, fake_auth, monkeypatch):
    save_user(store, "admin-1", "Admin")
    save_user(store, "staff-1", "Staff")

    def gone(uid):
        raise fake_auth.UserNotFoundError(uid)

    monkeypatch.setattr(fake_auth, "delete_user", gone)
    AccountService(store, fake_auth, http=FakeHttp()).delete_user("admin-1", "staff-1")
    assert store.get_document("users", "staff-1") is None
