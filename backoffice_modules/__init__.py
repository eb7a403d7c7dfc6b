"""
Domain modules of the back office: projects, billing and service requests.

``build_services(session, settings, clock)`` is the composition root; it
returns every service wired to one store, cache and clock, with cache
invalidation and the save/delete hooks subscribed.
"""

from backoffice_modules._lifecycle import (
    BackofficeServices,
    build_services,
    register_lifecycle_hooks,
    sync_title,
)

__all__ = [
    "BackofficeServices",
    "build_services",
    "register_lifecycle_hooks",
    "sync_title",
]
