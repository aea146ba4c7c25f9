"""
API v1 Router Module - Image Provider Gateway

All v1 endpoints are prefixed with /api/v1/

- /api/v1/generate, /providers, /validate-key - Provider dispatch
- /api/v1/tools/* - Image post-processing
- /api/v1/metrics - Prometheus scrape endpoint
"""

from fastapi import APIRouter

from src.api.v1.generate import router as generate_router
from src.api.v1.tools import router as tools_router
from src.api.v1.metrics import router as metrics_router

# Main v1 router
api_v1_router = APIRouter(prefix="/api/v1")

api_v1_router.include_router(generate_router, tags=["generation"])
api_v1_router.include_router(tools_router, prefix="/tools", tags=["tools"])
api_v1_router.include_router(metrics_router, tags=["metrics"])
