from __future__ import annotations

from fastapi import APIRouter

from ..settings import settings

router = APIRouter()


@router.get("/", tags=["health"])
def health():
    return {
        "message": "Procurement Exchange API",
        "version": "1.0.0",
        "status": "running",
        "port": settings.port,
        "environment": settings.normalized_environment,
        "dynamodb": "configured" if settings.ddb_table_name else "missing",
        "storage": "configured" if settings.assets_bucket_name else "missing",
        "endpoints": [
            "POST /api/auth/register",
            "POST /api/auth/login",
            "GET /api/rfps",
            "POST /api/rfps",
            "GET /api/responses",
            "POST /api/responses",
            "POST /api/documents/upload",
        ],
    }
