"""Xero integration - OAuth connection, token lifecycle and invoice sync"""

from .router import router

__all__ = ["router"]
