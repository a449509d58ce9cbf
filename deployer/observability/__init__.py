"""
Observability Module — Health checks and monitoring.
"""

from .health import ComponentHealth, HealthChecker, HealthStatus, SystemHealth

__all__ = [
    "HealthChecker",
    "HealthStatus",
    "SystemHealth",
    "ComponentHealth",
]
