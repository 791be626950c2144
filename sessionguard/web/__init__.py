"""
Web module - Flask HTTP layer over AuthFacade.
"""

from sessionguard.web.app import build_facade, create_app, require_auth

__all__ = ["build_facade", "create_app", "require_auth"]
