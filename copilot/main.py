"""Main FastAPI application."""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from copilot import __version__
from copilot.api.endpoints import router
from copilot.config import get_settings
from copilot.utils.logging import LogConfig, setup_logging

setup_logging(LogConfig(level=get_settings().log_level))

# Create FastAPI application
app = FastAPI(
    title="Browser Copilot",
    description=(
        "Conversation service for an AI browser assistant: streams replies from a local or hosted "
        "model, attaches page context and runs browser tools on the model's behalf."
    ),
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
    tags_metadata=[
        {
            "name": "Chat",
            "description": "Send messages, cancel generation and manage conversation settings.",
        },
        {
            "name": "Models",
            "description": "Installed models and their capabilities.",
        },
        {
            "name": "Health",
            "description": "Service health monitoring and status checks.",
        },
    ],
)

# The browser extension calls from its own origin
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(router)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("copilot.main:app", host="127.0.0.1", port=8000, reload=True, log_level="info")
