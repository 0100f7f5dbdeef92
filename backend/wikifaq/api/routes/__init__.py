"""
API route modules.
"""

from wikifaq.api.routes import pipeline

__all__ = ["pipeline"]
