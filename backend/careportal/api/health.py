from fastapi import APIRouter

router = APIRouter(tags=["Health"])


@router.get("/health")
async def health_check():
    """Health check endpoint for Docker and load balancers."""
    return {"status": "healthy", "service": "careportal-api"}


@router.get("/")
async def root():
    """Root endpoint with API information."""
    return {"message": "Welcome to CarePortal API", "docs": "/docs", "health": "/health"}
