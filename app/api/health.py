"""
Health check and status endpoints
"""
from fastapi import APIRouter
from datetime import datetime
from app.config import get_settings
from app import __version__
from app.scheduler import get_scheduled_jobs

settings = get_settings()

router = APIRouter()


@router.get("/health")
async def health_check():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "timestamp": datetime.utcnow().isoformat(),
        "version": __version__
    }


@router.get("/status")
async def get_status():
    """Get system status"""
    return {
        "app_name": settings.app_name,
        "version": __version__,
        "environment": settings.environment,
        "channel_fit": {
            "min_sellers_for_benchmark": settings.channel_fit_min_sellers_for_benchmark,
            "phase2_min_users": settings.channel_fit_phase2_min_users,
            "benchmark_ttl_hours": settings.channel_fit_benchmark_ttl_hours,
            "max_products": settings.max_products,
            "benchmark_warmup": settings.enable_benchmark_warmup,
        },
        "scheduled_jobs": get_scheduled_jobs(),
        "timestamp": datetime.utcnow().isoformat()
    }
