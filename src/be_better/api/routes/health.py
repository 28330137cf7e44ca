"""Root and health endpoints."""

from fastapi import APIRouter

from be_better import __version__

router = APIRouter()


@router.get("/")
async def root():
    """API identity and version."""
    return {"message": "Be Better API", "version": __version__}


@router.get("/health")
async def health_check():
    """Liveness check."""
    return {"status": "ok", "version": __version__}
