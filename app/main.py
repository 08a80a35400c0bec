import logging
from fastapi import FastAPI, Request
from fastapi.responses import RedirectResponse
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware

from app.core.config import LOG_LEVEL, public_firebase_config
from app.core.exceptions import AuthRedirect

# Configure logging once for every "fleet.*" logger
logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

# Import Routers
from app.api.v1.endpoints import admin, auth, bookings, images, pages, receptionist

app = FastAPI(
    title="Fleet Portal",
    description="Vehicle booking, key handover and inspection management"
)

# --- 1. SECURITY & MIDDLEWARE ---

# CORS: Allow frontend access (Adjust origins for production)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# CSP: Prevent XSS attacks by restricting script sources
class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request, call_next):
        response = await call_next(request)
        response.headers["Content-Security-Policy"] = (
            "default-src 'self'; "
            "script-src 'self' 'unsafe-inline' https://www.gstatic.com; "
            "connect-src 'self' https://identitytoolkit.googleapis.com https://securetoken.googleapis.com https://firebasestorage.googleapis.com; "
            "img-src 'self' data: https:; "
            "style-src 'self' 'unsafe-inline';"
        )
        return response

app.add_middleware(SecurityHeadersMiddleware)

# Page guards raise AuthRedirect; send the browser to the fallback page
@app.exception_handler(AuthRedirect)
async def auth_redirect_handler(request: Request, exc: AuthRedirect):
    return RedirectResponse(exc.location, status_code=303)

# --- 2. API ROUTES ---
app.include_router(auth.router, prefix="/api/v1/auth", tags=["Auth"])
app.include_router(bookings.router, prefix="/api/v1/bookings", tags=["Bookings"])
app.include_router(receptionist.router, prefix="/api/v1/receptionist", tags=["Receptionist"])
app.include_router(admin.router, prefix="/api/v1/admin", tags=["Admin"])
app.include_router(images.router, prefix="/api/v1", tags=["Images"])

# Serve Frontend Config Dynamically
@app.get("/api/v1/config")
async def get_frontend_config():
    """Returns public Firebase config from environment variables."""
    return public_firebase_config()

@app.get("/health")
async def health():
    return {"status": "online"}

# --- 3. PORTAL PAGES ---
app.include_router(pages.router, tags=["Pages"])

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
