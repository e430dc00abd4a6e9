# backend/api/main.py

import logging

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pymongo.errors import PyMongoError

from core.config import CORS_ALLOWED_ORIGINS
from core.database import startup_db_client, shutdown_db_client, ping_database
from core.exceptions import QRCodeNotFoundError, IdentifierExhaustedError, StorageUnavailableError
from core.logging_config import setup_logging

setup_logging()
logger = logging.getLogger(__name__)

app = FastAPI(
    title="QR RBAC Backend API",
    description="QR code generation, resolution and scan analytics with role-based access control",
    version="1.0.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

@app.on_event("startup")
async def startup():
    await startup_db_client()

@app.on_event("shutdown")
async def shutdown():
    await shutdown_db_client()

# --- Error handlers ---

@app.exception_handler(QRCodeNotFoundError)
async def qr_code_not_found_handler(request: Request, exc: QRCodeNotFoundError):
    # Same body for unknown and deactivated codes
    logger.info("QR code not resolvable: %s", exc.code_id)
    return JSONResponse(
        status_code=status.HTTP_404_NOT_FOUND,
        content={"success": False, "valid": False, "message": QRCodeNotFoundError.message},
    )

@app.exception_handler(IdentifierExhaustedError)
async def identifier_exhausted_handler(request: Request, exc: IdentifierExhaustedError):
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"success": False, "message": "Could not generate QR code, please retry"},
    )

@app.exception_handler(StorageUnavailableError)
@app.exception_handler(PyMongoError)
async def storage_unavailable_handler(request: Request, exc: Exception):
    logger.error("Storage error on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"success": False, "message": "Service temporarily unavailable"},
    )

@app.get("/health", tags=["health"])
async def health():
    if not await ping_database():
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"status": "unavailable", "database": "disconnected"},
        )
    return {"status": "ok", "database": "connected"}

# --- API Endpoints ---

from .routers import auth, categories, qrcodes
app.include_router(auth.router)
app.include_router(categories.router)
app.include_router(qrcodes.router)
