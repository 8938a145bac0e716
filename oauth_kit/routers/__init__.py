"""OAuth kit routers."""

from oauth_kit.routers.auth import router as auth_router

__all__ = ["auth_router"]
