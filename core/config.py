# backend/core/config.py

import os
from typing import List

from dotenv import load_dotenv

# Load environment variables
load_dotenv()

# --- MongoDB ---
MONGO_DB_URL = os.getenv("MONGO_DB_URL", "mongodb://localhost:27017")
MONGO_DB_NAME = os.getenv("MONGO_DB_NAME", "qrrbacdb")
MONGO_SERVER_SELECTION_TIMEOUT_MS = int(os.getenv("MONGO_SERVER_SELECTION_TIMEOUT_MS", 5000))

# --- Auth ---
SECRET_KEY = os.getenv("SECRET_KEY", "super-secret-key")
ALGORITHM = os.getenv("ALGORITHM", "HS256")
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", 60))

# --- Frontend / CORS ---
# Verification pages live on the frontend; generated QR images encode FRONTEND_URL/verify/<code_id>
FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:3000").rstrip("/")

_CORS_ALLOWED_ORIGINS_STR = os.getenv(
    "CORS_ALLOWED_ORIGINS",
    "http://localhost:3000,http://127.0.0.1:3000,http://localhost",
)
CORS_ALLOWED_ORIGINS: List[str] = [
    origin.strip() for origin in _CORS_ALLOWED_ORIGINS_STR.split(",") if origin.strip()
]

# --- QR codes ---
CODE_ID_BYTES = int(os.getenv("CODE_ID_BYTES", 9))  # 9 bytes -> 12 url-safe characters
MAX_CODE_ID_ATTEMPTS = int(os.getenv("MAX_CODE_ID_ATTEMPTS", 5))
SCAN_RECORD_ATTEMPTS = int(os.getenv("SCAN_RECORD_ATTEMPTS", 3))
MAX_QR_CODES_PER_USER = int(os.getenv("MAX_QR_CODES_PER_USER", 2))
RECENT_SCANS_LIMIT = int(os.getenv("RECENT_SCANS_LIMIT", 50))

# --- Logging ---
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
