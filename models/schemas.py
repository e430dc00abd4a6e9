# backend/models/schemas.py

from datetime import datetime, timezone
from typing import Annotated, Optional, Literal
from urllib.parse import urlparse

from pydantic import BaseModel, Field, BeforeValidator, field_validator

# MongoDB ObjectIds are exposed to clients as plain strings
PyObjectId = Annotated[str, BeforeValidator(str)]

Role = Literal["user", "admin"]
DeviceType = Literal["mobile", "tablet", "desktop", "unknown"]

def _utcnow() -> datetime:
    return datetime.now(timezone.utc)

class UserSchema(BaseModel):
    id: Optional[PyObjectId] = Field(None, alias="_id")
    email: str = Field(..., description="Login email of the user")
    name: str = Field(..., description="Display name of the user")
    role: Role = Field("user", description="Role of the user")
    created_at: datetime = Field(default_factory=_utcnow, alias="createdAt")

    class Config:
        populate_by_name = True

class UserRegisterSchema(BaseModel):
    email: str = Field(..., min_length=3, max_length=254, description="Login email for the account")
    name: str = Field(..., min_length=2, max_length=50, description="Display name")
    password: str = Field(..., min_length=8, max_length=128, description="User's password")

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        v = v.strip().lower()
        if "@" not in v:
            raise ValueError("Invalid email address")
        return v

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        return v.strip()

class CategorySchema(BaseModel):
    id: Optional[PyObjectId] = Field(None, alias="_id")
    name: str
    color: str = "#3b82f6"
    description: str = ""
    created_at: datetime = Field(default_factory=_utcnow, alias="createdAt")

    class Config:
        populate_by_name = True

class CategoryCreateSchema(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    color: str = Field("#3b82f6", pattern=r"^#[0-9a-fA-F]{6}$")
    description: str = Field("", max_length=500)

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Category name must not be blank")
        return v

class QRCodeSchema(BaseModel):
    id: Optional[PyObjectId] = Field(None, alias="_id")
    code_id: str = Field(..., alias="codeId", description="Opaque code identifier embedded in the QR image")
    website_url: str = Field(..., alias="websiteURL")
    website_title: str = Field(..., alias="websiteTitle")
    assigned_to: PyObjectId = Field(..., alias="assignedTo", description="Owning user id")
    category_id: PyObjectId = Field(..., alias="categoryId")
    image_url: str = Field(..., alias="imageURL")
    is_active: bool = Field(True, alias="isActive")
    scan_count: int = Field(0, alias="scanCount")
    last_scanned: Optional[datetime] = Field(None, alias="lastScanned")
    created_at: datetime = Field(default_factory=_utcnow, alias="createdAt")
    updated_at: Optional[datetime] = Field(None, alias="updatedAt")

    class Config:
        populate_by_name = True

def _validate_website_url(v: str) -> str:
    v = v.strip()
    parsed = urlparse(v)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ValueError("Invalid website URL format. Please include http:// or https://")
    # urlparse lowercases the scheme; store it that way, rest untouched
    return parsed.scheme + v[len(parsed.scheme):]

def _validate_title(v: str) -> str:
    v = v.strip()
    if not v:
        raise ValueError("Website title must not be blank")
    if len(v) > 200:
        raise ValueError("Website title must be at most 200 characters")
    return v

class QRCodeGenerateRequest(BaseModel):
    user_id: str = Field(..., alias="userId")
    category_id: str = Field(..., alias="categoryId")
    website_url: str = Field(..., alias="websiteURL")
    website_title: str = Field(..., alias="websiteTitle")

    class Config:
        populate_by_name = True

    @field_validator("website_url")
    @classmethod
    def check_url(cls, v: str) -> str:
        return _validate_website_url(v)

    @field_validator("website_title")
    @classmethod
    def check_title(cls, v: str) -> str:
        return _validate_title(v)

class QRCodeUpdateRequest(BaseModel):
    website_title: Optional[str] = Field(None, alias="websiteTitle")
    category_id: Optional[str] = Field(None, alias="categoryId")
    is_active: Optional[bool] = Field(None, alias="isActive")

    class Config:
        populate_by_name = True

    @field_validator("website_title")
    @classmethod
    def check_title(cls, v: Optional[str]) -> Optional[str]:
        return None if v is None else _validate_title(v)

class DeviceInfo(BaseModel):
    browser: str = "Unknown"
    os: str = "Unknown"
    device_type: DeviceType = Field("unknown", alias="deviceType")
    is_android: bool = Field(False, alias="isAndroid")
    is_ios: bool = Field(False, alias="isIOS")
    is_desktop: bool = Field(False, alias="isDesktop")
    is_mobile: bool = Field(False, alias="isMobile")
    is_tablet: bool = Field(False, alias="isTablet")

    class Config:
        populate_by_name = True

class ScanSchema(BaseModel):
    id: Optional[PyObjectId] = Field(None, alias="_id")
    code_id: str = Field(..., alias="codeId")
    qr_code_id: PyObjectId = Field(..., alias="qrCodeId")
    ip_address: str = Field("Unknown", alias="ipAddress")
    user_agent: str = Field("Unknown", alias="userAgent")
    device_info: DeviceInfo = Field(default_factory=DeviceInfo, alias="deviceInfo")
    timestamp: datetime = Field(default_factory=_utcnow)

    class Config:
        populate_by_name = True

class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"

# Analytics query vocabulary
Period = Literal["24h", "7d", "30d", "all"]
Granularity = Literal["daily", "weekly"]

