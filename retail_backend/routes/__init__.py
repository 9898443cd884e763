# retail_backend/routes/__init__.py
"""HTTP handlers, one blueprint per area. Authorization happens before these run (see permissions.POLICY)."""
from flask import g


def current_user_id():
    return g.identity['id'] if g.identity else None
