"""
API Module
==========
FastAPI application and request security.
"""

from .main import Services, build_services, create_app

__all__ = ["Services", "build_services", "create_app"]
