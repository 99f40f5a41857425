"""API routers module."""

from .decks import router as decks_router
from .cards import router as cards_router
from .virtual_cards import router as virtual_cards_router
from .review import router as review_router
from .digest import router as digest_router, admin_router

__all__ = [
    "decks_router",
    "cards_router",
    "virtual_cards_router",
    "review_router",
    "digest_router",
    "admin_router",
]
