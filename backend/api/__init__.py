"""
DistrictRadar API Routers
FastAPI router modules for Command Search and service health.
"""
from backend.api import health, search

__all__ = [
    "health",
    "search",
]
