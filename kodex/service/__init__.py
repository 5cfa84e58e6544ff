"""HTTP service for the kodex knowledge base."""

from .app import create_app, run_service

__all__ = ["create_app", "run_service"]
