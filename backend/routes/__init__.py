"""
Routes package for the wedding invitation API

Routes are organized by domain:
- health: Health check endpoints
- weddings: Wedding management for the couple
- rsvps: RSVP dashboard, statistics and export
- guests: Guest roster and bulk import
- public: Invitation pages and RSVP submission for guests
"""
from .health import router as health_router
from .weddings import setup_wedding_routes
from .rsvps import setup_rsvp_routes
from .guests import setup_guest_routes
from .public import setup_public_routes

__all__ = [
    'health_router',
    'setup_wedding_routes',
    'setup_rsvp_routes',
    'setup_guest_routes',
    'setup_public_routes',
]
