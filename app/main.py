from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
import uvicorn
import logging

from app.db.database import init_db
from app.storage.s3 import S3Service
from app.settings import settings
from app.routers.images import router as image_router
from app.routers.tags import router as tag_router
from app.routers.users import router as user_router
from app.exceptions import add_exception_handlers

logging.basicConfig(level=logging.INFO)
log = logging.getLogger("image-service")

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
        Async context manager for FastAPI application lifecycle events.
        Initializes and closes resources (S3, database tables) for the application.
    """
    # Initialize resources
    if settings.create_tables:
        init_db()
    app.state.s3 = S3Service()
    yield
    # Cleanup resources
    app.state.s3.close()

# Initialize App
app = FastAPI(
    title=settings.app_title,
    lifespan=lifespan,
    description="Image upload, tagging and search service",
    root_path = "/api/v1"
)

# Add exception handlers
add_exception_handlers(app)

# CORS - Middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=['*'],
    allow_methods=["*"],
    allow_headers=["*"],
)

# Add the routers
app.include_router(user_router)
app.include_router(image_router)
app.include_router(tag_router)

# Check Health
@app.get("/")
def read_root():
    """
        Default end point
    """
    return "Image Tagging Service is running."

if __name__ == "__main__":
    uvicorn.run("app.main:app", host="0.0.0.0", port=8000, reload=True)
