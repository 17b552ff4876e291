"""Service factories shared by the v1 endpoints.

Tests replace these through ``app.dependency_overrides``.
"""

from typing import Annotated

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from bidsmart.core.database import get_async_session as get_session
from bidsmart.services.callback_service import CallbackService
from bidsmart.services.dispatch_service import DispatchService
from bidsmart.services.project_service import ProjectService
from bidsmart.services.status_service import StatusService
from bidsmart.services.upload_service import UploadService
from bidsmart.services.user_service import UserService


async def get_user_service(
    db_session: Annotated[AsyncSession, Depends(get_session)]
) -> UserService:
    return UserService(db_session)


async def get_project_service(
    db_session: Annotated[AsyncSession, Depends(get_session)]
) -> ProjectService:
    return ProjectService(db_session)


async def get_upload_service(
    db_session: Annotated[AsyncSession, Depends(get_session)]
) -> UploadService:
    return UploadService(db_session)


async def get_dispatch_service(
    db_session: Annotated[AsyncSession, Depends(get_session)]
) -> DispatchService:
    return DispatchService(db_session)


async def get_status_service(
    db_session: Annotated[AsyncSession, Depends(get_session)]
) -> StatusService:
    return StatusService(db_session)


async def get_callback_service(
    db_session: Annotated[AsyncSession, Depends(get_session)]
) -> CallbackService:
    return CallbackService(db_session)
