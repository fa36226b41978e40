"""API Package.

FastAPI server for Odoo user provisioning.
"""

from api.server import create_app

__all__ = [
    "create_app",
]
