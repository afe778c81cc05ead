from fastapi import APIRouter
from access_remover.api.v1.endpoints import scan

api_router = APIRouter()
api_router.include_router(scan.router, prefix="/scan", tags=["Scan"])
