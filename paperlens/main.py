"""FastAPI application."""

from fastapi import FastAPI

from paperlens.api.routes.conversations import router as conversations_router
from paperlens.api.routes.documents import router as documents_router
from paperlens.api.routes.health import router as health_router
from paperlens.api.routes.metrics import router as metrics_router
from paperlens.api.routes.uploads import router as uploads_router

app = FastAPI(title="Paperlens API", version="0.1.0")

# Register routes
app.include_router(health_router, tags=["health"])
app.include_router(metrics_router, tags=["metrics"])
app.include_router(documents_router, tags=["documents"])
app.include_router(uploads_router, tags=["uploads"])
app.include_router(conversations_router, tags=["conversations"])


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint."""
    return {"message": "Paperlens API", "version": "0.1.0"}
