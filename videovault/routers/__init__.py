"""
Routers package initialization.
"""

from videovault.routers import auth, events, streaming, videos

__all__ = ["auth", "events", "streaming", "videos"]
