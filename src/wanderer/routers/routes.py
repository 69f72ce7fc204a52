"""Route planning and progress endpoints."""
from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from wanderer import deps
from wanderer.config import settings
from wanderer.core.models import Checkpoint, CheckpointOnRoute, Coordinate, Route, RouteProgress
from wanderer.core.progress import nearest_checkpoint_on_route, progress
from wanderer.providers.combined import DEFAULT_ROUTING

router = APIRouter(prefix="/routes", tags=["routes"])


class PlanRequest(BaseModel):
    origin: Coordinate
    destination: Coordinate
    waypoints: List[Coordinate] = Field(default_factory=list)
    provider: str = DEFAULT_ROUTING


class PlanResponse(BaseModel):
    route: Route
    source: str
    skipped: List[str] = []


class ProgressRequest(BaseModel):
    route: Route
    position: Coordinate
    off_route_threshold_m: Optional[float] = None
    # the nearest unreached one is located on the route
    checkpoints: List[Checkpoint] = Field(default_factory=list)


class ProgressResponse(RouteProgress):
    next_checkpoint: Optional[CheckpointOnRoute] = None


@router.post("/plan", response_model=PlanResponse)
def plan_route(req: PlanRequest):
    try:
        chain = deps.get_routing_chain(req.provider)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    plan = chain.plan(req.origin, req.destination, req.waypoints)
    return PlanResponse(route=plan.route, source=plan.source, skipped=plan.errors)


@router.post("/progress", response_model=ProgressResponse)
def route_progress(req: ProgressRequest):
    threshold = req.off_route_threshold_m
    if threshold is None:
        threshold = settings.off_route_threshold_m
    p = progress(req.route, req.position, threshold)
    nearest = nearest_checkpoint_on_route(
        req.route, [cp for cp in req.checkpoints if not cp.reached], req.position, settings.walking_speed_mps
    )
    return ProgressResponse(**p.model_dump(), next_checkpoint=nearest)
