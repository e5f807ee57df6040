"""FastAPI dependencies for request handling.

This module provides reusable FastAPI dependencies for:
- Application settings
- The thumbnail service owned by the app lifespan
"""

from fastapi import HTTPException, Request, status

from snapthumb.core.config import Settings
from snapthumb.services.thumbnail_service import ThumbnailService


def get_settings(request: Request) -> Settings:
    """Get the settings instance the app was created with.

    Returns:
        Settings stored in app.state, or a fresh instance loaded from env vars.
    """
    settings = getattr(request.app.state, "settings", None)
    return settings or Settings()  # type: ignore[call-arg]  # Pydantic loads from env vars


def get_thumbnail_service(request: Request) -> ThumbnailService:
    """Get the ThumbnailService from app state.

    Raises:
        HTTPException: 503 if the lifespan has not created the service yet

    Example:
        >>> @router.get("/endpoint")
        >>> async def endpoint(service=Depends(get_thumbnail_service)):
        ...     return service.get_status(job_id)
    """
    service = getattr(request.app.state, "thumbnail_service", None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Thumbnail service is not running",
        )
    return service
