import os
from dotenv import load_dotenv

load_dotenv()

# --- Firebase / GCP ---
PROJECT_ID = os.getenv("GCP_PROJECT_ID")
SA_KEY_PATH = os.getenv("GOOGLE_APPLICATION_CREDENTIALS")
BUCKET_NAME = os.getenv("GCP_STORAGE_BUCKET")

FIREBASE_API_KEY = os.getenv("FIREBASE_API_KEY")
FIREBASE_AUTH_DOMAIN = os.getenv("FIREBASE_AUTH_DOMAIN")
FIREBASE_MESSAGING_SENDER_ID = os.getenv("FIREBASE_MESSAGING_SENDER_ID")
FIREBASE_APP_ID = os.getenv("FIREBASE_APP_ID")

IDENTITY_TOOLKIT_URL = os.getenv(
    "IDENTITY_TOOLKIT_URL", "https://identitytoolkit.googleapis.com/v1"
)

# --- Session ---
ROLE_CACHE_TTL_SECONDS = float(os.getenv("ROLE_CACHE_TTL_SECONDS", "300"))
AUTH_REDIRECT_GRACE_SECONDS = float(os.getenv("AUTH_REDIRECT_GRACE_SECONDS", "1.0"))
SESSION_COOKIE_NAME = os.getenv("SESSION_COOKIE_NAME", "fleet_session")

# --- Misc ---
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
HTTP_TIMEOUT = float(os.getenv("HTTP_TIMEOUT", "10"))


def public_firebase_config() -> dict:
    """Public Firebase web config, safe to hand to the browser."""
    return {
        "apiKey": FIREBASE_API_KEY,
        "authDomain": FIREBASE_AUTH_DOMAIN,
        "projectId": PROJECT_ID,
        "storageBucket": BUCKET_NAME,
        "messagingSenderId": FIREBASE_MESSAGING_SENDER_ID,
        "appId": FIREBASE_APP_ID,
    }
