"""Video model catalog route."""

from typing import Annotated

from fastapi import APIRouter, Depends

from mediagen.routes.dependencies import get_orchestrator
from mediagen.schemas.models import ModelCatalog
from mediagen.services.orchestrator import JobOrchestrator

router = APIRouter(tags=["Models"])


@router.get("/models", response_model=ModelCatalog)
def list_models(orchestrator: Annotated[JobOrchestrator, Depends(get_orchestrator)]) -> ModelCatalog:
    return orchestrator.list_models()
