"""API routers package."""

from yieldpool.api.routers import admin, allocation, vault

__all__ = ["admin", "allocation", "vault"]
