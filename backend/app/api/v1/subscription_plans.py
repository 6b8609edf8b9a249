"""Subscription plan catalog routes: public reads, admin writes."""

import uuid

from fastapi import APIRouter, Depends, Query, status

from app.api.deps import get_plan_catalog, require_admin
from app.models.user import User
from app.schemas.billing import PlanCreate, PlanListResponse, PlanResponse, PlanUpdate
from app.services.plan_service import PlanCatalog

router = APIRouter(prefix="/api/v1/subscription-plans", tags=["subscription-plans"])


@router.post(
    "",
    response_model=PlanResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a subscription plan",
)
async def create_plan(
    body: PlanCreate,
    catalog: PlanCatalog = Depends(get_plan_catalog),
    _admin: User = Depends(require_admin),
) -> PlanResponse:
    """Create a plan and, unless it is free with skip_billing, its Stripe product and price."""
    plan = await catalog.create_plan(body)
    return PlanResponse.model_validate(plan)


@router.get(
    "",
    response_model=PlanListResponse,
    summary="List subscription plans",
)
async def list_plans(
    status_filter: str | None = Query(None, alias="status"),
    limit: int = Query(10, ge=1, le=100),
    offset: int = Query(0, ge=0),
    catalog: PlanCatalog = Depends(get_plan_catalog),
) -> PlanListResponse:
    """Return a page of non-archived plans, newest first."""
    plans, total = await catalog.list_plans(status=status_filter, limit=limit, offset=offset)
    return PlanListResponse(
        items=[PlanResponse.model_validate(p) for p in plans],
        total=total,
    )


@router.get(
    "/{plan_id}",
    response_model=PlanResponse,
    summary="Get a subscription plan",
)
async def get_plan(
    plan_id: uuid.UUID,
    catalog: PlanCatalog = Depends(get_plan_catalog),
) -> PlanResponse:
    plan = await catalog.get_plan(plan_id)
    return PlanResponse.model_validate(plan)


@router.patch(
    "/{plan_id}",
    response_model=PlanResponse,
    summary="Update a subscription plan",
)
async def update_plan(
    plan_id: uuid.UUID,
    body: PlanUpdate,
    catalog: PlanCatalog = Depends(get_plan_catalog),
    _admin: User = Depends(require_admin),
) -> PlanResponse:
    """Partially update a plan. Pricing changes mint a new Stripe price."""
    plan = await catalog.update_plan(plan_id, body)
    return PlanResponse.model_validate(plan)


@router.delete(
    "/{plan_id}",
    response_model=PlanResponse,
    summary="Archive a subscription plan",
)
async def archive_plan(
    plan_id: uuid.UUID,
    catalog: PlanCatalog = Depends(get_plan_catalog),
    _admin: User = Depends(require_admin),
) -> PlanResponse:
    """Soft-delete a plan and deactivate its Stripe product."""
    plan = await catalog.archive_plan(plan_id)
    return PlanResponse.model_validate(plan)
