import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.security import OAuth2PasswordRequestForm
from pymongo.errors import DuplicateKeyError

from models.schemas import UserSchema, UserRegisterSchema, Token
from core.database import get_database
from core.security import (
    verify_password, get_password_hash,
    create_access_token, ACCESS_TOKEN_EXPIRE_MINUTES,
    get_current_user,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["auth"])

class UserInDB(UserSchema):
    hashed_password: str

async def get_user(email: str, database) -> Optional[UserInDB]:
    user_data = await database["users"].find_one({"email": email.strip().lower()})
    if user_data:
        return UserInDB.model_validate(user_data)
    return None

async def authenticate_user(email: str, password: str, database) -> Optional[UserInDB]:
    user = await get_user(email, database)
    if not user:
        return None
    if not verify_password(password, user.hashed_password):
        return None
    return user

async def _create_user(user_in: UserRegisterSchema, role: str, database) -> UserSchema:
    user_data = {
        "email": user_in.email,
        "name": user_in.name,
        "role": role,
        "hashed_password": get_password_hash(user_in.password),
        "created_at": datetime.now(timezone.utc),
    }
    try:
        new_user = await database["users"].insert_one(user_data)
    except DuplicateKeyError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Email already registered"
        )
    created_user = await database["users"].find_one({"_id": new_user.inserted_id})
    logger.info("Registered %s account %s", role, user_in.email)
    return UserSchema.model_validate(created_user)

@router.post("/auth/register", response_model=UserSchema, status_code=status.HTTP_201_CREATED)
async def register_user(user_in: UserRegisterSchema, database = Depends(get_database)):
    existing_user = await database["users"].find_one({"email": user_in.email})
    if existing_user:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Email already registered"
        )
    return await _create_user(user_in, "user", database)

@router.post("/auth/initial-admin", response_model=UserSchema, status_code=status.HTTP_201_CREATED)
async def register_initial_admin(user_in: UserRegisterSchema, database = Depends(get_database)):
    """Bootstraps the first administrator; closed once any admin exists."""
    if await database["users"].count_documents({"role": "admin"}) > 0:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Initial admin already configured"
        )
    return await _create_user(user_in, "admin", database)

@router.post("/auth/token", response_model=Token)
async def login_for_access_token(form_data: OAuth2PasswordRequestForm = Depends(), database = Depends(get_database)):
    user = await authenticate_user(form_data.username, form_data.password, database)
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect username or password",
            headers={"WWW-Authenticate": "Bearer"},
        )
    access_token_expires = timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)
    access_token = create_access_token(
        data={"sub": user.email, "role": user.role}, expires_delta=access_token_expires
    )
    return Token(access_token=access_token)

@router.get("/auth/me", response_model=UserSchema)
async def read_users_me(current_user: UserSchema = Depends(get_current_user)):
    return current_user
