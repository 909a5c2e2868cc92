# presence_service/services/users_service/dependencies.py
from fastapi import Request

from presence_service.core.users.service import UserService


def get_user_service(request: Request) -> UserService:
    return request.app.state.user_service
