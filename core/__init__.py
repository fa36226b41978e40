"""Core module - provisioning engine and shared infrastructure.

Contains the provisioning saga, its data model and repository, the
credential vault, the audit trail and observability helpers.

Odoo-specific wire handling belongs in /connectors/.
"""

__version__ = "1.0.0"
