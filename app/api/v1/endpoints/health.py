from datetime import datetime, timezone

from fastapi import APIRouter

router = APIRouter()

@router.get("", summary="Health check")
async def health_root():
    return {
        "success": True,
        "message": "API is running",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
