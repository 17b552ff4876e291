from datetime import datetime, timezone
from typing import Any, Dict, Optional
from uuid import uuid4

from fastapi import HTTPException, Request, status as http_status

from bidsmart.core.exceptions import (
    AppError,
    APIClientError,
    AuthorizationError,
    CallbackAuthenticationError,
    CallbackValidationError,
    ConfigurationError,
    DispatchError,
    NotFoundError,
    StructuralError,
    ValidationError,
)
from bidsmart.schemas.common import ApiResponse, ErrorDetail, ResponseMeta

# Most specific classes first
ERROR_STATUS_MAP = (
    (CallbackAuthenticationError, http_status.HTTP_401_UNAUTHORIZED, "Unauthorized"),
    (CallbackValidationError, http_status.HTTP_400_BAD_REQUEST, "Invalid Callback"),
    (StructuralError, http_status.HTTP_422_UNPROCESSABLE_CONTENT, "Unresolvable Callback Target"),
    (DispatchError, http_status.HTTP_502_BAD_GATEWAY, "Extraction Dispatch Failed"),
    (ValidationError, http_status.HTTP_400_BAD_REQUEST, "Validation Error"),
    (AuthorizationError, http_status.HTTP_403_FORBIDDEN, "Forbidden"),
    (NotFoundError, http_status.HTTP_404_NOT_FOUND, "Not Found"),
    (APIClientError, http_status.HTTP_502_BAD_GATEWAY, "Upstream Service Error"),
    (ConfigurationError, http_status.HTTP_500_INTERNAL_SERVER_ERROR, "Server Configuration Error"),
)


def _request_id(request: Optional[Request]) -> str:
    if request is not None:
        for attr in ("request_id", "correlation_id"):
            value = getattr(request.state, attr, None)
            if value:
                return value
    return str(uuid4())


def create_api_response(
    data: Any,
    message: str = "Operation successful",
    status: bool = True,
    request: Optional[Request] = None,
    api_version: str = "v1"
) -> Dict[str, Any]:
    """Create a standardized API response as a dictionary.

    Returns a dict to be compatible with FastAPI's response_model=dict.
    """
    meta = ResponseMeta(
        timestamp=datetime.now(timezone.utc),
        request_id=_request_id(request),
        api_version=api_version
    )

    data_dict: Dict[str, Any] = {}
    if isinstance(data, dict):
        data_dict = data
    elif hasattr(data, "model_dump"):
        data_dict = data.model_dump(mode="json")
    elif isinstance(data, list):
        data_dict = {"items": [item.model_dump(mode="json") if hasattr(item, "model_dump") else item for item in data]}
    elif data is not None:
        data_dict = {"value": data}

    response = ApiResponse(
        status=status,
        message=message,
        data=data_dict,
        meta=meta
    )
    return response.model_dump(mode="json")


def create_error_detail(
    title: str,
    status: int,
    detail: str,
    request: Optional[Request] = None,
    instance: Optional[str] = None
) -> ErrorDetail:
    """Create a standardized error detail (RFC 7807)."""
    return ErrorDetail(
        title=title,
        status=status,
        detail=detail,
        instance=instance or (request.url.path if request else None),
        request_id=_request_id(request),
        timestamp=datetime.now(timezone.utc)
    )


def http_error_from_app_error(error: AppError, request: Optional[Request] = None) -> HTTPException:
    """Translate an application error into an HTTPException with problem details.

    Unmapped errors become a 500 without leaking the internal message.
    """
    for error_cls, status_code, title in ERROR_STATUS_MAP:
        if isinstance(error, error_cls):
            detail = create_error_detail(title, status_code, str(error), request)
            headers = {"WWW-Authenticate": "HMAC"} if status_code == http_status.HTTP_401_UNAUTHORIZED else None
            return HTTPException(status_code=status_code, detail=detail.model_dump(mode="json"), headers=headers)

    detail = create_error_detail(
        "Internal Server Error",
        http_status.HTTP_500_INTERNAL_SERVER_ERROR,
        "An unexpected error occurred",
        request,
    )
    return HTTPException(status_code=http_status.HTTP_500_INTERNAL_SERVER_ERROR, detail=detail.model_dump(mode="json"))
