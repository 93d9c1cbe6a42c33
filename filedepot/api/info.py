"""API Endpoints for server health and statistics."""

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from filedepot.api.auth import get_services
from filedepot.services import Services

app_info = APIRouter(tags=["informational"])


class StatusResponse(BaseModel):
    redis: bool = Field(description="Whether the session store answers")
    db: bool = Field(description="Whether the document store answers")


class StatsResponse(BaseModel):
    users: int = Field(description="Number of registered users")
    files: int = Field(description="Number of folders, files and images")


@app_info.get("/status")
async def get_status(services: Services = Depends(get_services)) -> StatusResponse:
    """Check the connections to the backends."""
    return StatusResponse(redis=await services.sessions.is_alive(), db=await services.documents.is_alive())


@app_info.get("/stats")
async def get_stats(services: Services = Depends(get_services)) -> StatsResponse:
    """Count users and files."""
    return StatsResponse(users=await services.users.count(), files=await services.files.count())
