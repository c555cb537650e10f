"""
AutoGift Backend — FastAPI Entry Point

Initializes the FastAPI app and registers the auto-gift routers:
scheduler webhook and approvals, rule/settings management, the
recipient address form, and connection nudges.
"""

from fastapi import Depends, FastAPI

from autogift.api.address_collection import router as address_collection_router
from autogift.api.auto_gifts import router as auto_gifts_router
from autogift.api.nudges import router as nudges_router
from autogift.api.rules import router as rules_router
from autogift.core.config import API_V1_PREFIX, PROJECT_NAME
from autogift.core.security import get_current_user_id

app = FastAPI(
    title=f"{PROJECT_NAME} API",
    description="Automated gift rules, approvals and order hand-off",
    version="0.1.0",
)

# --- Register API routers ---
app.include_router(auto_gifts_router)
app.include_router(rules_router)
app.include_router(address_collection_router)
app.include_router(nudges_router)


@app.get("/health")
async def health_check():
    """Health check endpoint. Returns service status."""
    return {"status": "ok"}


@app.get(f"{API_V1_PREFIX}/me")
async def get_current_user(user_id: str = Depends(get_current_user_id)):
    """Return the authenticated user's ID. Used to check the auth setup."""
    return {"user_id": user_id}
