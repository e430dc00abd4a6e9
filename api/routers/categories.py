from datetime import datetime, timezone
from typing import List

from fastapi import APIRouter, Depends, HTTPException, status
from pymongo.errors import DuplicateKeyError

from models.schemas import CategorySchema, CategoryCreateSchema, UserSchema
from core.database import get_database
from core.security import get_current_user, require_admin

router = APIRouter(tags=["categories"])

@router.get("/categories", response_model=List[CategorySchema])
async def list_categories(
    database = Depends(get_database),
    current_user: UserSchema = Depends(get_current_user),
):
    categories = await database["categories"].find({}, sort=[("name", 1)]).to_list(length=1000)
    return [CategorySchema.model_validate(category) for category in categories]

@router.post("/categories", response_model=CategorySchema, status_code=status.HTTP_201_CREATED)
async def create_category(
    category_in: CategoryCreateSchema,
    database = Depends(get_database),
    admin: UserSchema = Depends(require_admin),
):
    category_data = category_in.model_dump()
    category_data["created_at"] = datetime.now(timezone.utc)
    try:
        result = await database["categories"].insert_one(category_data)
    except DuplicateKeyError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Category already exists")
    created = await database["categories"].find_one({"_id": result.inserted_id})
    return CategorySchema.model_validate(created)
