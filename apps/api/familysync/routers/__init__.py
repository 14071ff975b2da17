from familysync.routers import admin_sync, family, health

__all__ = [
    "health",
    "family",
    "admin_sync",
]
