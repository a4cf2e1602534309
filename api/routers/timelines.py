"""REST endpoints for recording into, querying and pruning timelines."""

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel

from api.dependencies import get_registry, get_timeline
from timeline import InvalidRangeError, Timeline, TimelineRegistry

router = APIRouter(prefix="/api/v1")


class EventIn(BaseModel):
    value: float | None = None


def _describe(sensor: Timeline) -> dict:
    return {
        "name": sensor.name,
        "strategy": sensor.strategy.name,
        "interval": sensor.interval,
        "ttl": sensor.ttl,
        "raw_data_ttl": sensor.raw_data_ttl,
        "reduce_delay": sensor.reduce_delay,
    }


@router.get("/timelines")
async def list_timelines(registry: TimelineRegistry = Depends(get_registry)):
    """All registered timelines and their options."""
    return [_describe(sensor) for sensor in registry]


@router.get("/timelines/{name}")
def get_timeline_values(
    start: float | None = Query(default=None, description="Range start (unix seconds)"),
    end: float | None = Query(default=None, description="Range end (unix seconds)"),
    time_ago: int | None = Query(default=None, gt=0, description="Seconds back from now"),
    sensor: Timeline = Depends(get_timeline),
):
    """Values of one timeline. Give either ``start``/``end`` or ``time_ago`` (default: last hour)."""
    try:
        if start is not None or end is not None:
            if start is None or end is None:
                raise InvalidRangeError("both start and end are required")
            points = sensor.timeline_within(start, end)
        else:
            points = sensor.timeline(time_ago or 3600)
    except InvalidRangeError as e:
        raise HTTPException(status_code=400, detail=str(e)) from None
    return {**_describe(sensor), "points": [p.to_dict() for p in points]}


@router.post("/timelines/{name}/events", status_code=202)
def record_event(event: EventIn, sensor: Timeline = Depends(get_timeline)):
    """Fold one event into the current interval."""
    try:
        sensor.event(event.value)
    except TypeError as e:
        raise HTTPException(status_code=422, detail=str(e)) from None
    return {"status": "accepted"}


@router.post("/timelines/{name}/reduce")
def reduce_timeline(sensor: Timeline = Depends(get_timeline)):
    """Run the reduction sweep for one timeline now."""
    return {"reduced": sensor.reduce_all_raw()}


@router.delete("/timelines/{name}/data")
def drop_timeline_data(
    start: float = Query(..., description="Range start (unix seconds)"),
    end: float = Query(..., description="Range end (unix seconds)"),
    sensor: Timeline = Depends(get_timeline),
):
    """Delete raw and summarized data within a range."""
    try:
        removed = sensor.drop_within(start, end)
    except InvalidRangeError as e:
        raise HTTPException(status_code=400, detail=str(e)) from None
    return {"removed": removed}
