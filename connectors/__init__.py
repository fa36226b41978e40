"""Remote system connectors.

Only Odoo is supported. The connector handles:
- Session authentication against a named Odoo database
- JSON-RPC transport and response validation
- Self-healing retry on expired sessions
- Permission group resolution and API key issuance

Saga orchestration and persistence live in core.provisioning; nothing in
this package touches local storage.
"""
