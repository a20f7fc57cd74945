"""
Opinion Drafting Assistant - FastAPI Application.

Provides REST API endpoints for document upload, the drafting
conversation, section-by-section drafting and review.

Run with: uvicorn app.main:app
"""

from app.config import Settings, get_settings

__all__ = [
    "get_settings",
    "Settings",
]
