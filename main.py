"""
Main application entry point for the Contacts API.

This module initializes the FastAPI application, configures logging,
CORS and the centralized error responses, creates the database tables
and includes the routers for authentication and contacts.

Run ``python main.py`` to start a development server.
"""

import logging

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from contactbook import models, contacts
from contactbook.auth import router as auth_router
from contactbook.core import get_settings
from contactbook.database import engine
from contactbook.errors import register_exception_handlers

logger = logging.getLogger("contactbook")
logging.basicConfig(
    level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s"
)

# Create tables (for development only)
models.Base.metadata.create_all(bind=engine)

settings = get_settings()

# Initialize FastAPI application
app = FastAPI(title="Contacts API")

# Configure CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

# Include routers for application areas
app.include_router(auth_router)
app.include_router(contacts.router)


@app.get("/")
def root():
    """
    Root endpoint for the API.

    Returns a simple JSON message directing users to the Swagger UI.

    Returns:
        dict: JSON message with information about the API
    """
    return {"msg": "Contacts API. Visit /docs for Swagger UI"}


if __name__ == "__main__":
    logger.info(
        "Server is running in %s mode, on port %s", settings.ENVIRONMENT, settings.PORT
    )
    uvicorn.run(app, host="0.0.0.0", port=settings.PORT)
