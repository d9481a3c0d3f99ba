"""Health check endpoint with database connectivity and signing-config checks."""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from userauth.api.deps import get_token_service
from userauth.core.config import settings
from userauth.core.database import check_db_connected, get_db
from userauth.schemas.health import HealthResponse
from userauth.services.tokens import TokenService

router = APIRouter()


@router.get("/", response_model=HealthResponse)
def get_health(
    db: Session = Depends(get_db),
    tokens: TokenService = Depends(get_token_service),
) -> HealthResponse:
    """
    Return service health, database connectivity and whether both token
    secrets are configured. Used by load balancers and monitoring.
    """
    return HealthResponse(
        status="ok",
        environment=settings.APP_ENV,
        database="connected" if check_db_connected(db) else "disconnected",
        token_signing=(
            "configured"
            if tokens.config.access_secret and tokens.config.refresh_secret
            else "missing_secret"
        ),
    )
