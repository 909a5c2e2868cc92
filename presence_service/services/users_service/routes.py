# presence_service/services/users_service/routes.py
from fastapi import APIRouter, Depends, HTTPException, status

from presence_service.common.logger import log_error, log_warning
from presence_service.core.errors import (
    InvalidCredentialsError,
    PersistenceError,
    UserAlreadyExistsError,
    UserNotFoundError,
)
from presence_service.core.users.service import UserService
from presence_service.services.users_service.dependencies import get_user_service
from presence_service.shared.models.common import MessageResponse
from presence_service.shared.models.user import LoginRequest, RegisterRequest

router = APIRouter(tags=["users"])


@router.post("/register", response_model=MessageResponse)
async def register_user(
    request: RegisterRequest,
    service: UserService = Depends(get_user_service),
):
    try:
        await service.register(request.username, request.password)
    except UserAlreadyExistsError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Username already exists",
        )
    except PersistenceError as e:
        await log_error(f"Регистрация {request.username} не сохранена: {e}")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="User storage unavailable",
        )

    return MessageResponse(message="User created successfully")


@router.post("/login", response_model=MessageResponse)
async def login_user(
    request: LoginRequest,
    service: UserService = Depends(get_user_service),
):
    try:
        await service.login(request.username, request.password)
    except UserNotFoundError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="User not found",
        )
    except InvalidCredentialsError:
        await log_warning(f"Неверный пароль для {request.username}")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Incorrect password",
        )

    return MessageResponse(message="Login successful")
