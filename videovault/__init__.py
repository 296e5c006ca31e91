"""
VideoVault: multi-tenant video upload, processing and streaming service.
"""

__version__ = "1.0.0"
