"""Runtime configuration for the VolunteerHub messaging service."""
import os
from dotenv import load_dotenv

# Load environment variables from a local .env file if present
load_dotenv()

ENVIRONMENT = os.environ.get("ENVIRONMENT", "development")

DATABASE_URL = os.environ.get("DATABASE_URL", "sqlite:///./volunteerhub.db")

# Shared secret of the identity provider that signs session tokens
AUTH_SECRET = os.environ.get("AUTH_SECRET", "dev-volunteerhub-secret-change-me")
AUTH_ALGORITHM = "HS256"

FRONTEND_URL = os.environ.get("FRONTEND_URL", "http://localhost:3000")

# All users see times in the same zone; there is no per-user preference
DISPLAY_TIMEZONE = os.environ.get("DISPLAY_TIMEZONE", "Asia/Dhaka")

TOAST_SECONDS = float(os.environ.get("TOAST_SECONDS", "4"))

LOGIN_PATH = os.environ.get("LOGIN_PATH", "/login.html")
MESSAGES_PATH = "/messages"
