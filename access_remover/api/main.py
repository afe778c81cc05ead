from fastapi import FastAPI
from access_remover.api.v1.router import api_router

app = FastAPI(
    title="Drive Email Access Remover API",
    description="API for starting, monitoring and stopping bulk access removal runs.",
    version="1.0.0"
)

# Include the main API router
app.include_router(api_router, prefix="/api/v1")

@app.get("/", tags=["Root"])
def read_root():
    """A simple health check endpoint."""
    return {"status": "ok", "message": "Welcome to the Drive Email Access Remover API"}
