"""Pricebook web route modules.

Each module exports a ``router`` (APIRouter instance) that the app factory
in ``pricebook.web.app`` includes.
"""

from pricebook.web.routes import health, jobs, modes

__all__ = ["health", "jobs", "modes"]
