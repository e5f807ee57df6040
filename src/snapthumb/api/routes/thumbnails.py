"""Thumbnail job API endpoints.

This module implements the collaborator-facing REST surface:
- POST /api/thumbnails - Enqueue a thumbnail job for an owner (returns 202)
- GET /api/thumbnails/jobs/{job_id} - Poll a job's status and result
- GET /api/thumbnails/owners/{owner_id}/jobs - Recent jobs for an owner
- DELETE /api/thumbnails/{owner_id} - Delete an owner's artifact
- GET /api/placeholder/{width}/{height} - Static SVG placeholder
"""

from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Response, status
from pydantic import BaseModel, Field

from snapthumb.api.dependencies import get_thumbnail_service
from snapthumb.models.thumbnail_job import JobStatus, ThumbnailJob, ThumbnailResult
from snapthumb.services.exceptions import InvalidOwnerIdError
from snapthumb.services.imaging.synthesis import MINIMAL_COLOR, MINIMAL_TEXT, ThumbnailScene
from snapthumb.services.thumbnail_service import ThumbnailService

router = APIRouter(prefix="/api", tags=["thumbnails"])

MAX_PLACEHOLDER_SIZE = 2048


# Request/Response Models


class EnqueueRequest(BaseModel):
    """Request model for creating a thumbnail job."""

    owner_id: str = Field(
        ...,
        description="Identifier of the entity the thumbnail belongs to (used as filename)",
        min_length=1,
        max_length=128,
    )
    source_url: str = Field(
        ...,
        description="Page to capture",
        min_length=1,
        max_length=2048,
    )
    title: str = Field(default="", max_length=500)
    category: str = Field(default="", max_length=100)


class EnqueueResponse(BaseModel):
    """Response model for an accepted job."""

    job_id: str
    status: JobStatus
    artifact_url: str


class JobDTO(BaseModel):
    """Data Transfer Object for job information in API responses."""

    id: str
    owner_id: str
    source_url: str
    status: JobStatus
    result: ThumbnailResult | None = None
    artifact_url: str
    created_at: datetime
    started_at: datetime | None = None
    completed_at: datetime | None = None

    @classmethod
    def from_job(cls, job: ThumbnailJob, artifact_url: str) -> "JobDTO":
        return cls(
            id=job.id,
            owner_id=job.owner_id,
            source_url=job.source_url,
            status=job.status,
            result=job.result,
            artifact_url=artifact_url,
            created_at=job.created_at,
            started_at=job.started_at,
            completed_at=job.completed_at,
        )


@router.post(
    "/thumbnails",
    response_model=EnqueueResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
def enqueue_thumbnail(
    request: EnqueueRequest,
    service: ThumbnailService = Depends(get_thumbnail_service),
) -> EnqueueResponse:
    """Queue thumbnail generation; the loading placeholder exists when this returns.

    Sync so it runs in the threadpool: placeholder rendering and the write block.
    """
    try:
        job_id = service.enqueue(
            owner_id=request.owner_id,
            source_url=request.source_url,
            title=request.title,
            category=request.category,
        )
    except InvalidOwnerIdError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    return EnqueueResponse(
        job_id=job_id,
        status=JobStatus.PENDING,
        artifact_url=service.artifact_url(request.owner_id),
    )


@router.get("/thumbnails/jobs/{job_id}", response_model=JobDTO)
async def get_job(
    job_id: str,
    service: ThumbnailService = Depends(get_thumbnail_service),
) -> JobDTO:
    job = service.get_status(job_id)
    if job is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Job not found")
    return JobDTO.from_job(job, service.artifact_url(job.owner_id))


@router.get("/thumbnails/owners/{owner_id}/jobs", response_model=list[JobDTO])
async def list_owner_jobs(
    owner_id: str,
    service: ThumbnailService = Depends(get_thumbnail_service),
) -> list[JobDTO]:
    try:
        artifact_url = service.artifact_url(owner_id)
    except InvalidOwnerIdError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return [JobDTO.from_job(job, artifact_url) for job in service.list_jobs(owner_id)]


@router.delete("/thumbnails/{owner_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_thumbnail(
    owner_id: str,
    service: ThumbnailService = Depends(get_thumbnail_service),
) -> Response:
    try:
        deleted = service.delete_artifact(owner_id)
    except InvalidOwnerIdError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    if not deleted:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Artifact not found")
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/placeholder/{width}/{height}")
async def placeholder(width: int, height: int) -> Response:
    """Flat SVG placeholder for references that have no artifact at all."""
    width = min(max(width, 1), MAX_PLACEHOLDER_SIZE)
    height = min(max(height, 1), MAX_PLACEHOLDER_SIZE)
    scene = ThumbnailScene(
        width=width,
        height=height,
        colors=(MINIMAL_COLOR, MINIMAL_COLOR),
        title_lines=[MINIMAL_TEXT],
        title_size=max(10, min(width, height) // 12),
    )
    return Response(
        content=scene.to_svg(),
        media_type="image/svg+xml",
        headers={"Cache-Control": "public, max-age=86400"},
    )
