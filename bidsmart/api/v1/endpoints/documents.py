"""Document status endpoint."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Request

from bidsmart.api.v1.endpoints.dependencies import get_status_service, get_user_service
from bidsmart.core.auth import get_current_user
from bidsmart.core.exceptions import AppError
from bidsmart.schemas.auth import CurrentUser
from bidsmart.schemas.common import ApiResponse
from bidsmart.services.status_service import StatusService
from bidsmart.services.user_service import UserService
from bidsmart.utils.responses import create_api_response, http_error_from_app_error

router = APIRouter()


@router.get(
    "/{document_id}/status",
    response_model=ApiResponse,
    summary="Get document extraction status",
    operation_id="get_document_status",
)
async def get_document_status(
    request: Request,
    document_id: UUID,
    current_user: Annotated[CurrentUser, Depends(get_current_user)] = None,
    user_service: Annotated[UserService, Depends(get_user_service)] = None,
    status_service: Annotated[StatusService, Depends(get_status_service)] = None,
) -> ApiResponse:
    """Status, progress and stall flag for one uploaded bid."""
    user = await user_service.get_or_create_user_from_jwt(current_user)
    try:
        result = await status_service.get_document_status(document_id, user.id)
    except AppError as e:
        raise http_error_from_app_error(e, request)

    return create_api_response(
        data=result,
        message="Document status retrieved successfully",
        request=request,
    )
