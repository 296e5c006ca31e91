"""
FastAPI dependencies: services from app.state and the authenticated caller.
"""

from typing import Optional

from fastapi import Depends, Query, Request

from videovault.config import Settings
from videovault.errors import UnauthorizedError
from videovault.services.accounts import AccountService, CurrentUser
from videovault.services.notifier import Notifier
from videovault.services.pipeline import ProcessingPipeline
from videovault.services.storage import FileStorage
from videovault.services.streaming import StreamingService
from videovault.services.video_store import VideoStore


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_video_store(request: Request) -> VideoStore:
    return request.app.state.video_store


def get_storage(request: Request) -> FileStorage:
    return request.app.state.storage


def get_pipeline(request: Request) -> ProcessingPipeline:
    return request.app.state.pipeline


def get_streaming_service(request: Request) -> StreamingService:
    return request.app.state.streaming


def get_notifier(request: Request) -> Notifier:
    return request.app.state.notifier


def get_account_service(request: Request) -> AccountService:
    return request.app.state.accounts


def bearer_token(request: Request, token: Optional[str] = Query(None)) -> Optional[str]:
    """Token from `Authorization: Bearer ...`, falling back to `?token=`."""
    header = request.headers.get("authorization", "")
    scheme, _, credentials = header.partition(" ")
    if scheme.lower() == "bearer" and credentials.strip():
        return credentials.strip()
    return token


async def get_current_user(
    token: Optional[str] = Depends(bearer_token),
    accounts: AccountService = Depends(get_account_service),
) -> CurrentUser:
    return await accounts.authenticate(token)


def require_roles(*roles: str):
    """Dependency factory rejecting callers whose role in the tenant is not listed."""

    async def checker(current: CurrentUser = Depends(get_current_user)) -> CurrentUser:
        if current.role not in roles:
            raise UnauthorizedError(
                f"Access denied. Required roles: {', '.join(roles)}",
                {"role": current.role},
            )
        return current

    return checker
