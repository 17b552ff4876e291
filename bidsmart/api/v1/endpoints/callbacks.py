"""Inbound callback from the extraction service.

This route is excluded from bearer auth; the body carries its own HMAC
signature which the callback service checks before reading anything else.
"""

import json
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Request, status

from bidsmart.api.v1.endpoints.dependencies import get_callback_service
from bidsmart.core.exceptions import AppError
from bidsmart.schemas.common import ApiResponse
from bidsmart.services.callback_service import CallbackService
from bidsmart.utils.logging import get_logger
from bidsmart.utils.responses import (
    create_api_response,
    create_error_detail,
    http_error_from_app_error,
)

LOGGER = get_logger(__name__)

router = APIRouter()


@router.post(
    "/extraction",
    response_model=ApiResponse,
    summary="Receive extraction results",
    operation_id="receive_extraction_callback",
)
async def receive_extraction_callback(
    request: Request,
    callback_service: Annotated[CallbackService, Depends(get_callback_service)],
) -> ApiResponse:
    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        LOGGER.warning("Callback body is not valid JSON")
        error_detail = create_error_detail(
            title="Invalid Callback",
            status=status.HTTP_400_BAD_REQUEST,
            detail="Request body must be a JSON object",
            request=request,
        )
        raise HTTPException(status_code=400, detail=error_detail.model_dump(mode="json"))

    if not isinstance(body, dict):
        error_detail = create_error_detail(
            title="Invalid Callback",
            status=status.HTTP_400_BAD_REQUEST,
            detail="Request body must be a JSON object",
            request=request,
        )
        raise HTTPException(status_code=400, detail=error_detail.model_dump(mode="json"))

    try:
        outcome = await callback_service.execute(body)
    except AppError as e:
        raise http_error_from_app_error(e, request)

    return create_api_response(
        data=outcome,
        message="Callback processed",
        request=request,
    )
