"""API Routes Package."""

from api.routes import health, odoo_users

__all__ = [
    "health",
    "odoo_users",
]
