"""Route modules."""

from .credits import router as credits_router
from .jobs import router as jobs_router
from .models import router as models_router
from .pricing import router as pricing_router
from .webhooks import router as webhooks_router

__all__ = ["credits_router", "jobs_router", "models_router", "pricing_router", "webhooks_router"]
