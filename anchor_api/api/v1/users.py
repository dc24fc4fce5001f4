from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from anchor_api.api.deps import get_current_user, get_session
from anchor_api.models import User
from anchor_api.schemas import UserCreate, UserRead, UserWithApiKey
from anchor_api.utils.security import generate_api_key

router = APIRouter(prefix="/users", tags=["users"])


@router.post("", response_model=UserWithApiKey, status_code=status.HTTP_201_CREATED)
async def create_user(
    payload: UserCreate,
    db: Annotated[AsyncSession, Depends(get_session)],
) -> UserWithApiKey:
    """Register an email and hand back its API key (shown only once)."""
    result = await db.execute(select(User).where(User.email == payload.email))
    if result.scalar_one_or_none():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Email already registered",
        )

    user = User(email=payload.email, api_key=generate_api_key())
    db.add(user)
    await db.commit()
    await db.refresh(user)

    return UserWithApiKey.model_validate(user, from_attributes=True)


@router.get("/me", response_model=UserRead)
async def get_me(
    current_user: Annotated[User, Depends(get_current_user)],
) -> UserRead:
    return UserRead.model_validate(current_user)
