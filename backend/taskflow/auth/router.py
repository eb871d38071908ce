from fastapi import APIRouter, Depends, status

from taskflow.auth import service
from taskflow.auth.dependencies import get_current_user
from taskflow.auth.schemas import TokenResponse, UserCreate, UserLogin, UserResponse

router = APIRouter(prefix="/auth", tags=["Authentication"])


@router.post("/register", response_model=TokenResponse, status_code=status.HTTP_201_CREATED)
async def register(user_data: UserCreate):
    return await service.register_user(user_data)


@router.post("/login", response_model=TokenResponse)
async def login(user_data: UserLogin):
    return await service.authenticate(user_data)


@router.get("/me", response_model=UserResponse)
async def get_current_user_info(current_user: dict = Depends(get_current_user)):
    return service.profile(current_user)
