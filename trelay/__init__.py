"""
trelay package initializer.
"""

from . import analytics
from . import auth
from . import manager
from . import storage

__all__ = ["analytics", "auth", "manager", "storage"]
