import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status, Header
from pydantic import BaseModel, EmailStr
from starlette.concurrency import run_in_threadpool

from app.api.deps import (
    get_account_service,
    get_document_store,
    get_sessions,
    get_token_verifier,
)
from app.core.config import SESSION_COOKIE_NAME
from app.core.exceptions import AuthError, AuthRedirect, NotFoundError
from app.core.rbac import role_satisfies
from app.services.accounts import AccountService
from app.services.session import Principal, SessionRegistry, lookup_role, resolve_once

logger = logging.getLogger("fleet.auth")

router = APIRouter()

# --- MODELS ---

class LoginRequest(BaseModel):
    email: EmailStr
    password: str

class ProfileUpdate(BaseModel):
    firstName: str
    lastName: str
    phoneNumber: Optional[str] = None

class PasswordUpdate(BaseModel):
    currentPassword: str
    newPassword: str

class PasswordResetRequest(BaseModel):
    email: EmailStr

# --- DEPENDENCIES ---

def _session_token(request: Request, authorization: Optional[str]) -> Optional[str]:
    if authorization:
        if not authorization.startswith("Bearer "):
            raise HTTPException(status_code=401, detail="Invalid header format")
        return authorization.split("Bearer ")[1]
    return request.cookies.get(SESSION_COOKIE_NAME)

def _principal(token: str, verify) -> Optional[Principal]:
    try:
        decoded = verify(token)
    except Exception as e:
        logger.error(f"Auth failed: {e}")
        return None
    return Principal(uid=decoded["uid"], email=decoded.get("email"))

async def get_current_user(
    request: Request,
    authorization: Optional[str] = Header(None),
    verify=Depends(get_token_verifier),
    store=Depends(get_document_store),
    sessions: SessionRegistry = Depends(get_sessions),
):
    """
    Verifies the Firebase ID token (Bearer header or session cookie) and
    resolves the caller's role through the session's role cache.
    """
    token = _session_token(request, authorization)
    principal = _principal(token, verify) if token else None
    if principal is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
        )

    context = sessions.get(token)
    role = await run_in_threadpool(lookup_role, store, context.cache, principal.uid)
    if role is None:
        raise HTTPException(status_code=401, detail="User profile not found")

    return {
        "uid": principal.uid,
        "email": principal.email,
        "role": role,
        "token": token,
    }

def require_role(*roles: str):
    """API guard: 403 unless the caller holds one of `roles`."""
    async def guard(user: dict = Depends(get_current_user)):
        if not role_satisfies(user["role"], roles):
            raise HTTPException(status_code=403, detail="Access denied")
        return user
    return guard

def require_page_role(*roles: str, redirect_to: str = "/"):
    """Page guard: same checks as the API, but failures redirect to `redirect_to`."""
    async def guard(
        request: Request,
        verify=Depends(get_token_verifier),
        store=Depends(get_document_store),
        sessions: SessionRegistry = Depends(get_sessions),
    ):
        token = request.cookies.get(SESSION_COOKIE_NAME)
        if not token:
            raise AuthRedirect(redirect_to)

        context = sessions.get(token)
        state, redirect = await resolve_once(
            context, store, _principal(token, verify),
            required_role=roles or None, redirect_to=redirect_to,
        )
        if redirect or state.user is None:
            raise AuthRedirect(redirect or redirect_to)
        return {"uid": state.user.uid, "email": state.user.email, "role": state.role, "token": token}
    return guard

# --- ROUTES ---

@router.post("/login")
async def login(data: LoginRequest, response: Response, accounts: AccountService = Depends(get_account_service)):
    """Signs in with email/password and sets the session cookie."""
    try:
        session = await run_in_threadpool(accounts.sign_in, data.email, data.password)
    except AuthError as e:
        raise HTTPException(status_code=401, detail=e.message)

    response.set_cookie(
        SESSION_COOKIE_NAME,
        session["idToken"],
        max_age=int(session.get("expiresIn", 3600)),
        httponly=True,
        samesite="lax",
    )
    return {
        "uid": session["localId"],
        "email": session.get("email"),
        "idToken": session["idToken"],
        "refreshToken": session.get("refreshToken"),
    }

@router.post("/logout")
async def logout(
    response: Response,
    current_user: dict = Depends(get_current_user),
    accounts: AccountService = Depends(get_account_service),
    sessions: SessionRegistry = Depends(get_sessions),
):
    """Clears the role cache, revokes refresh tokens and drops the cookie."""
    context = sessions.get(current_user["token"])
    try:
        await run_in_threadpool(accounts.log_out, current_user["uid"], context.cache)
    except Exception:
        raise HTTPException(status_code=500, detail="Failed to sign out")
    sessions.discard(current_user["token"])
    response.delete_cookie(SESSION_COOKIE_NAME)
    return {"message": "Signed out"}

@router.get("/me")
async def read_users_me(
    current_user: dict = Depends(get_current_user),
    accounts: AccountService = Depends(get_account_service),
):
    """Returns the current user's profile information."""
    try:
        user = await run_in_threadpool(accounts.get_user, current_user["uid"])
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)
    profile = user.model_dump(exclude={"password"})
    profile["mustChangePassword"] = user.has_temporary_password
    return profile

@router.put("/me")
async def update_profile(
    data: ProfileUpdate,
    current_user: dict = Depends(get_current_user),
    accounts: AccountService = Depends(get_account_service),
):
    """Updates name and phone number."""
    try:
        user = await run_in_threadpool(
            accounts.update_profile, current_user["uid"], data.firstName, data.lastName, data.phoneNumber
        )
        return user.model_dump(exclude={"password"})
    except Exception as e:
        logger.error(f"Profile update failed: {e}")
        raise HTTPException(status_code=400, detail="Profile update failed")

@router.post("/me/password")
async def change_password(
    data: PasswordUpdate,
    current_user: dict = Depends(get_current_user),
    accounts: AccountService = Depends(get_account_service),
    sessions: SessionRegistry = Depends(get_sessions),
):
    """Re-authenticates with the current password, then sets the new one."""
    context = sessions.get(current_user["token"])
    try:
        await run_in_threadpool(
            accounts.change_password,
            current_user["uid"],
            current_user["email"],
            data.currentPassword,
            data.newPassword,
            context.stream,
        )
    except AuthError as e:
        raise HTTPException(status_code=400, detail=e.message)
    return {"message": "Password changed successfully"}

@router.post("/password-reset")
async def send_password_reset(data: PasswordResetRequest, accounts: AccountService = Depends(get_account_service)):
    try:
        await run_in_threadpool(accounts.send_password_reset, data.email)
    except AuthError as e:
        raise HTTPException(status_code=400, detail=e.message)
    return {"message": "Password reset email sent"}
