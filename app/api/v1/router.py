"""Main API router aggregating all module routers."""

from fastapi import APIRouter

from app.api.v1.endpoints import bagrut
from app.schemas.common import ErrorResponse

api_router = APIRouter()

# Bagrut record engine (stateless, records are supplied in the request body)
api_router.include_router(
    bagrut.router,
    prefix="/bagrut",
    tags=["Bagrut"],
    responses={
        422: {"model": ErrorResponse, "description": "Invalid record or request"},
        500: {"model": ErrorResponse, "description": "Export failed"},
    },
)
