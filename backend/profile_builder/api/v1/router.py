"""API v1 router aggregator.

All v1 endpoint routers are included here.
"""

from fastapi import APIRouter

from profile_builder.api.v1 import pipelines

router = APIRouter()

router.include_router(pipelines.router, prefix="/pipelines", tags=["pipelines"])
