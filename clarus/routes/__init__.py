"""
API route modules.
"""

from .content import router as content_router
from .crons import router as crons_router
from .misc import router as misc_router
from .subscriptions import router as subscriptions_router
from .webhooks import router as webhooks_router

__all__ = [
    "content_router",
    "crons_router",
    "misc_router",
    "subscriptions_router",
    "webhooks_router",
]
