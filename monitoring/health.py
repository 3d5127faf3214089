"""
Health check endpoints for Kubernetes readiness and liveness checks.

Checks:
- Database connectivity
- Stripe API reachability
"""
from typing import Any, Dict, Optional

import structlog
from sqlalchemy import text

from config import get_settings
from database.connection import get_session_factory
from integrations.stripe_client import StripeClient

logger = structlog.get_logger(__name__)


class HealthCheckError(Exception):
    """Raised when health check fails."""

    pass


class HealthCheck:
    """
    Health check service for monitoring system dependencies.

    Provides:
    - Database connectivity check
    - Stripe API reachability check
    - Overall system health status
    """

    def __init__(self, stripe_client: Optional[StripeClient] = None) -> None:
        """Initialize health check service."""
        self.settings = get_settings()
        self._stripe_client = stripe_client

    @property
    def stripe_client(self) -> StripeClient:
        if self._stripe_client is None:
            self._stripe_client = StripeClient(self.settings)
        return self._stripe_client

    async def check_database(self) -> Dict[str, Any]:
        """
        Check database connectivity.

        Returns:
            Dict[str, Any]: Database health status

        Raises:
            HealthCheckError: If database check fails
        """
        try:
            session_factory = get_session_factory()
            async with session_factory() as db:
                result = await db.execute(text("SELECT 1"))
                result.scalar()

                return {
                    "status": "healthy",
                    "service": "database",
                    "message": "Database connection successful",
                }

        except Exception as e:
            logger.error("database_health_check_failed", error=str(e))
            raise HealthCheckError(f"Database health check failed: {str(e)}")

    async def check_stripe(self) -> Dict[str, Any]:
        """
        Check Stripe API reachability.

        Returns:
            Dict[str, Any]: Stripe health status

        Raises:
            HealthCheckError: If Stripe check fails
        """
        try:
            await self.stripe_client.ping()

            return {
                "status": "healthy",
                "service": "stripe",
                "message": "Stripe API connection successful",
                "test_mode": self.settings.is_test_mode,
            }

        except Exception as e:
            logger.error("stripe_health_check_failed", error=str(e))
            raise HealthCheckError(f"Stripe health check failed: {str(e)}")

    async def check_all(self) -> Dict[str, Any]:
        """
        Run all health checks.

        Returns:
            Dict[str, Any]: Overall health status
        """
        checks = {}
        all_healthy = True

        for service, check in (
            ("database", self.check_database),
            ("stripe", self.check_stripe),
        ):
            try:
                checks[service] = await check()
            except HealthCheckError as e:
                checks[service] = {
                    "status": "unhealthy",
                    "service": service,
                    "error": str(e),
                }
                all_healthy = False

        return {
            "status": "healthy" if all_healthy else "unhealthy",
            "checks": checks,
        }

    async def liveness(self) -> Dict[str, Any]:
        """
        Liveness check.

        Does not check external dependencies.
        """
        return {
            "status": "alive",
            "message": "Application is running",
        }

    async def readiness(self) -> Dict[str, Any]:
        """Readiness check: all dependencies must be available."""
        return await self.check_all()
