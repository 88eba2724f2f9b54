"""
License activation server.
"""

from .core import LicenseServer, create_app
from .start_service import start_server

__all__ = ["LicenseServer", "create_app", "start_server"]
