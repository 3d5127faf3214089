"""FastAPI application and routes."""
from .main import app
from .schemas import (
    AccountResult,
    CollectionRunRecord,
    CollectionRunResponse,
    HealthCheckResponse,
)

__all__ = [
    "app",
    "AccountResult",
    "CollectionRunRecord",
    "CollectionRunResponse",
    "HealthCheckResponse",
]
