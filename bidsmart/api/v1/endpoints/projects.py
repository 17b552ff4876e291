"""Project endpoints: creation, uploads, analysis dispatch and status."""

from typing import Annotated, List
from uuid import UUID

from fastapi import APIRouter, Depends, File, Request, UploadFile, status

from bidsmart.api.v1.endpoints.dependencies import (
    get_dispatch_service,
    get_project_service,
    get_status_service,
    get_upload_service,
    get_user_service,
)
from bidsmart.core.auth import get_current_user
from bidsmart.core.exceptions import AppError
from bidsmart.schemas.auth import CurrentUser
from bidsmart.schemas.common import ApiResponse
from bidsmart.schemas.dispatch import DispatchRequest
from bidsmart.schemas.project import (
    NotificationPreferencesRequest,
    ProjectCreateRequest,
    ProjectResponse,
)
from bidsmart.services.dispatch_service import DispatchService
from bidsmart.services.project_service import ProjectService
from bidsmart.services.status_service import StatusService
from bidsmart.services.upload_service import UploadService
from bidsmart.services.user_service import UserService
from bidsmart.utils.logging import get_logger
from bidsmart.utils.responses import create_api_response, http_error_from_app_error

LOGGER = get_logger(__name__)

router = APIRouter()


@router.post(
    "",
    response_model=ApiResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a project",
    operation_id="create_project",
)
async def create_project(
    request: Request,
    payload: ProjectCreateRequest,
    current_user: Annotated[CurrentUser, Depends(get_current_user)] = None,
    user_service: Annotated[UserService, Depends(get_user_service)] = None,
    project_service: Annotated[ProjectService, Depends(get_project_service)] = None,
) -> ApiResponse:
    """Create a draft project for the current user."""
    user = await user_service.get_or_create_user_from_jwt(current_user)
    project = await project_service.create_project(
        user.id,
        project_name=payload.project_name,
        notification_email=payload.notification_email,
        notify_on_completion=payload.notify_on_completion,
    )
    return create_api_response(
        data=ProjectResponse.model_validate(project),
        message="Project created successfully",
        request=request,
    )


@router.patch(
    "/{project_id}/notifications",
    response_model=ApiResponse,
    summary="Update completion email preferences",
    operation_id="update_project_notifications",
)
async def update_notifications(
    request: Request,
    project_id: UUID,
    payload: NotificationPreferencesRequest,
    current_user: Annotated[CurrentUser, Depends(get_current_user)] = None,
    user_service: Annotated[UserService, Depends(get_user_service)] = None,
    project_service: Annotated[ProjectService, Depends(get_project_service)] = None,
) -> ApiResponse:
    """Opt in or out of the completion email."""
    user = await user_service.get_or_create_user_from_jwt(current_user)
    try:
        project = await project_service.update_notification_preferences(
            project_id,
            user.id,
            notification_email=payload.notification_email,
            notify_on_completion=payload.notify_on_completion,
        )
    except AppError as e:
        raise http_error_from_app_error(e, request)

    return create_api_response(
        data=ProjectResponse.model_validate(project),
        message="Notification preferences updated",
        request=request,
    )


@router.post(
    "/{project_id}/documents",
    response_model=ApiResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Upload bid PDFs",
    operation_id="upload_project_documents",
)
async def upload_documents(
    request: Request,
    project_id: UUID,
    files: List[UploadFile] = File(..., description="One or more contractor bid PDFs"),
    current_user: Annotated[CurrentUser, Depends(get_current_user)] = None,
    user_service: Annotated[UserService, Depends(get_user_service)] = None,
    upload_service: Annotated[UploadService, Depends(get_upload_service)] = None,
) -> ApiResponse:
    """Store the PDFs and register a pending bid for each."""
    user = await user_service.get_or_create_user_from_jwt(current_user)
    try:
        result = await upload_service.execute(project_id, user.id, files)
    except AppError as e:
        raise http_error_from_app_error(e, request)

    return create_api_response(
        data=result,
        message=f"Successfully uploaded {len(result.documents)} documents",
        request=request,
    )


@router.post(
    "/{project_id}/analysis",
    response_model=ApiResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Dispatch documents for extraction",
    operation_id="dispatch_project_analysis",
)
async def dispatch_analysis(
    request: Request,
    project_id: UUID,
    payload: DispatchRequest,
    current_user: Annotated[CurrentUser, Depends(get_current_user)] = None,
    user_service: Annotated[UserService, Depends(get_user_service)] = None,
    dispatch_service: Annotated[DispatchService, Depends(get_dispatch_service)] = None,
) -> ApiResponse:
    """Send a batch of documents to the extraction service.

    Results arrive later on the callback endpoint.
    """
    user = await user_service.get_or_create_user_from_jwt(current_user)
    try:
        result = await dispatch_service.execute(
            project_id, user.id, payload.document_ids, payload.priorities
        )
    except AppError as e:
        raise http_error_from_app_error(e, request)

    return create_api_response(
        data=result,
        message="Extraction batch dispatched",
        request=request,
    )


@router.get(
    "/{project_id}/status",
    response_model=ApiResponse,
    summary="Get project extraction status",
    operation_id="get_project_status",
)
async def get_project_status(
    request: Request,
    project_id: UUID,
    current_user: Annotated[CurrentUser, Depends(get_current_user)] = None,
    user_service: Annotated[UserService, Depends(get_user_service)] = None,
    status_service: Annotated[StatusService, Depends(get_status_service)] = None,
) -> ApiResponse:
    user = await user_service.get_or_create_user_from_jwt(current_user)
    try:
        result = await status_service.get_project_status(project_id, user.id)
    except AppError as e:
        raise http_error_from_app_error(e, request)

    return create_api_response(
        data=result,
        message="Project status retrieved successfully",
        request=request,
    )
