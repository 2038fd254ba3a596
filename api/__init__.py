# API Module
# Contains the FastAPI routes of the gateway

from .routes import router

__all__ = ['router']
