"""Location search — geocoding for the settings page."""

from fastapi import APIRouter, Depends, Query

from displayhub.runtime import Runtime, get_runtime
from displayhub.upstream.models import LocationMatch

router = APIRouter(prefix="/locations")


@router.get("/search", response_model=list[LocationMatch])
async def search_locations(
    q: str = Query(..., min_length=1, max_length=200),
    limit: int = Query(5, ge=1, le=10),
    runtime: Runtime = Depends(get_runtime),
):
    return await runtime.weather_client.search_locations(q, limit)
