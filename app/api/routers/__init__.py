"""
app/api/routers package marker.
"""

from app.api.routers.municipalities import router as municipalities_router

__all__ = [
    "municipalities_router",
]
