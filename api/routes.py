"""
API routes for operating the unclaimed balance collector.
"""
from functools import lru_cache
from typing import Any, Dict, List

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from core.unclaimed_balances import UnclaimedBalanceCollectionError, UnclaimedBalanceCollector
from database.connection import get_db
from database.models import UnclaimedBalanceCollectionRun
from integrations.stripe_client import StripeClient
from monitoring.health import HealthCheck

from .schemas import CollectionRunRecord, CollectionRunResponse, HealthCheckResponse

logger = structlog.get_logger(__name__)

# Create routers
admin_router = APIRouter(prefix="/admin", tags=["admin"])
monitoring_router = APIRouter(tags=["monitoring"])


@lru_cache()
def get_stripe_client() -> StripeClient:
    """Process-wide Stripe client, so one circuit breaker sees every call."""
    return StripeClient()


def get_collector() -> UnclaimedBalanceCollector:
    return UnclaimedBalanceCollector(stripe_client=get_stripe_client())


@lru_cache()
def get_health_check() -> HealthCheck:
    return HealthCheck(stripe_client=get_stripe_client())


@admin_router.post(
    "/unclaimed-balances/collect",
    response_model=CollectionRunResponse,
    summary="Collect unclaimed balances",
    description="Manually trigger collection of balances from inactive merchant accounts",
)
async def collect_unclaimed_balances(
    collector: UnclaimedBalanceCollector = Depends(get_collector),
) -> Dict[str, Any]:
    """Run the unclaimed balance collection now."""
    logger.info("api_unclaimed_balance_collection_started")

    try:
        result = await collector.run()
    except UnclaimedBalanceCollectionError as e:
        logger.error("api_unclaimed_balance_collection_error", error=str(e))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Unclaimed balance collection failed: {str(e)}",
        )

    logger.info(
        "api_unclaimed_balance_collection_completed",
        run_id=result["run_id"],
        status=result["status"],
    )

    return result


@admin_router.get(
    "/unclaimed-balances/runs",
    response_model=List[CollectionRunRecord],
    summary="List collection runs",
    description="Most recent unclaimed balance collection runs, newest first",
)
async def list_collection_runs(
    limit: int = Query(default=20, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
) -> List[UnclaimedBalanceCollectionRun]:
    """List recent collection runs."""
    stmt = (
        select(UnclaimedBalanceCollectionRun)
        .order_by(UnclaimedBalanceCollectionRun.id.desc())
        .limit(limit)
    )
    result = await db.execute(stmt)
    return list(result.scalars().all())


@monitoring_router.get(
    "/health",
    response_model=HealthCheckResponse,
    summary="Health check",
    description="Check overall system health",
)
async def health(health_check: HealthCheck = Depends(get_health_check)) -> Dict[str, Any]:
    """Health check endpoint for monitoring."""
    return await health_check.check_all()


@monitoring_router.get(
    "/health/live",
    response_model=HealthCheckResponse,
    summary="Liveness check",
    description="Kubernetes liveness check endpoint",
)
async def liveness(health_check: HealthCheck = Depends(get_health_check)) -> Dict[str, Any]:
    """Liveness check endpoint."""
    return await health_check.liveness()


@monitoring_router.get(
    "/health/ready",
    response_model=HealthCheckResponse,
    summary="Readiness check",
    description="Kubernetes readiness check endpoint",
)
async def readiness(health_check: HealthCheck = Depends(get_health_check)) -> Dict[str, Any]:
    """Readiness check endpoint."""
    result = await health_check.readiness()
    if result["status"] != "healthy":
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=result)
    return result


@monitoring_router.get(
    "/metrics",
    summary="Prometheus metrics",
    description="Expose Prometheus metrics",
    include_in_schema=False,
)
async def prometheus_metrics() -> Response:
    """Expose Prometheus metrics."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
