"""
WEEX Basis Layer Utilities
"""
from .exchange_client import WeexClient

__all__ = ["WeexClient"]
