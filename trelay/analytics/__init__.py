from .analytics import Analytics
from .privacy import is_bot

__all__ = ["Analytics", "is_bot"]
