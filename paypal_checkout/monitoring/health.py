"""
Health checks for readiness/liveness probes.

Checks:
- Database connectivity
- PayPal OAuth reachability
"""
from typing import TYPE_CHECKING, Any, Dict

import structlog
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

if TYPE_CHECKING:
    from paypal_checkout.integrations.paypal_client import PayPalGateway

logger = structlog.get_logger(__name__)


class HealthCheckError(Exception):
    """Raised when health check fails."""

    pass


class HealthCheck:
    """Health check service for the database and the PayPal API."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        gateway: "PayPalGateway",
    ) -> None:
        self.session_factory = session_factory
        self.gateway = gateway

    async def check_database(self) -> Dict[str, Any]:
        """
        Check database connectivity.

        Raises:
            HealthCheckError: If database check fails
        """
        try:
            async with self.session_factory() as db:
                result = await db.execute(text("SELECT 1"))
                result.scalar()
        except Exception as e:
            logger.error("database_health_check_failed", error=str(e))
            raise HealthCheckError(f"Database health check failed: {str(e)}") from e

        return {
            "status": "healthy",
            "service": "database",
            "message": "Database connection successful",
        }

    async def check_paypal(self) -> Dict[str, Any]:
        """
        Check that PayPal issues an access token for the configured credentials.

        Raises:
            HealthCheckError: If PayPal check fails
        """
        try:
            await self.gateway.get_access_token()
        except Exception as e:
            logger.error("paypal_health_check_failed", error=str(e))
            raise HealthCheckError(f"PayPal health check failed: {str(e)}") from e

        return {
            "status": "healthy",
            "service": "paypal",
            "message": "PayPal API reachable",
            "mode": self.gateway.settings.paypal_mode.value,
        }

    async def check_all(self) -> Dict[str, Any]:
        """
        Run all health checks.

        Returns:
            Dict[str, Any]: Overall health status
        """
        checks = {}
        all_healthy = True

        for name, check in (("database", self.check_database), ("paypal", self.check_paypal)):
            try:
                checks[name] = await check()
            except HealthCheckError as e:
                checks[name] = {"status": "unhealthy", "service": name, "error": str(e)}
                all_healthy = False

        return {
            "status": "healthy" if all_healthy else "unhealthy",
            "checks": checks,
        }

    async def liveness(self) -> Dict[str, Any]:
        """Liveness probe; does not touch external dependencies."""
        return {
            "status": "alive",
            "message": "Application is running",
        }

    async def readiness(self) -> Dict[str, Any]:
        """Readiness probe; verifies all dependencies are available."""
        return await self.check_all()
