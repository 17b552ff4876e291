"""JWT Authentication Middleware for FastAPI.

Verifies the bearer token on every route except the public ones and the
extraction callback, which authenticates with its own HMAC signature.
"""

import jwt
from fastapi import Request, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from bidsmart.core.config import settings
from bidsmart.core.jwt import jwt_verifier
from bidsmart.schemas.auth import CurrentUser
from bidsmart.utils.logging import get_logger

LOGGER = get_logger(__name__)

EXCLUDED_PATHS = {
    "/",
    "/docs",
    "/docs/",
    "/redoc",
    "/openapi.json",
    f"{settings.api_v1_prefix}/callbacks/extraction",
}


class JWTAuthenticationMiddleware(BaseHTTPMiddleware):
    """Verifies Bearer token in 'Authorization' header and populates request.state.user."""

    async def dispatch(self, request: Request, call_next):
        if request.method == "OPTIONS":
            return await call_next(request)

        path = request.url.path
        if path in EXCLUDED_PATHS or path.startswith("/health"):
            return await call_next(request)

        auth_header = request.headers.get("Authorization")
        if not auth_header:
            LOGGER.warning(f"Missing authentication for {path}")
            return JSONResponse(
                status_code=status.HTTP_401_UNAUTHORIZED,
                content={"detail": "Authentication required"},
                headers={"WWW-Authenticate": "Bearer"},
            )

        if not auth_header.startswith("Bearer "):
            LOGGER.warning(f"Invalid Authorization header format for {path}")
            return JSONResponse(
                status_code=status.HTTP_401_UNAUTHORIZED,
                content={"detail": "Invalid authentication scheme. Use Bearer token."},
                headers={"WWW-Authenticate": "Bearer"},
            )

        try:
            claims = await jwt_verifier.verify_token(auth_header.split(" ", 1)[1])
        except jwt.InvalidTokenError as e:
            LOGGER.warning(f"Invalid token for {path}: {e}")
            return JSONResponse(
                status_code=status.HTTP_401_UNAUTHORIZED,
                content={"detail": "Invalid authentication token"},
                headers={"WWW-Authenticate": "Bearer"},
            )

        request.state.user = CurrentUser(
            id=claims.sub,
            email=claims.email,
            role=claims.role or "user",
            app_metadata=claims.app_metadata,
            user_metadata=claims.user_metadata,
        )
        return await call_next(request)
