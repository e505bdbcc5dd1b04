import datetime
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from typing import List

from database import get_db
from auth import require_user
from models import User, Car
from schemas import ProfileUpdate, ProfileResponse, CarCreate, CarResponse
from exceptions import ProfileNotFound

router = APIRouter(tags=["users"])

@router.get("/users/me", response_model=ProfileResponse)
async def get_my_profile(current=Depends(require_user), db: AsyncSession = Depends(get_db)):
    return await get_profile(current["user_id"], db)

@router.put("/users/me", response_model=ProfileResponse)
async def update_my_profile(profile: ProfileUpdate, current=Depends(require_user), db: AsyncSession = Depends(get_db)):
    # Merge semantics: only fields sent by the client are touched
    user = await db.get(User, current["user_id"])
    if not user:
        user = User(id=current["user_id"], email=current.get("email"))
        db.add(user)
    elif current.get("email") and not user.email:
        user.email = current["email"]

    for field, value in profile.model_dump(exclude_unset=True).items():
        setattr(user, field, value)
    user.updated_at = datetime.datetime.utcnow()

    await db.commit()
    await db.refresh(user)
    return user

@router.get("/users/{user_id}", response_model=ProfileResponse)
async def get_profile(user_id: str, db: AsyncSession = Depends(get_db)):
    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if not user:
        raise ProfileNotFound()
    return user

@router.post("/cars", response_model=CarResponse, status_code=201)
async def add_car(car: CarCreate, current=Depends(require_user), db: AsyncSession = Depends(get_db)):
    db_car = Car(owner_id=current["user_id"], **car.model_dump())
    db.add(db_car)
    await db.commit()
    await db.refresh(db_car)
    return db_car

@router.get("/cars/mine", response_model=List[CarResponse])
async def my_cars(current=Depends(require_user), db: AsyncSession = Depends(get_db)):
    result = await db.execute(
        select(Car).where(Car.owner_id == current["user_id"]).order_by(Car.created_at)
    )
    return result.scalars().all()
