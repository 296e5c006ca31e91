"""
Services package initialization.
"""

from videovault.services.pipeline import ProcessingPipeline
from videovault.services.streaming import StreamingService
from videovault.services.video_store import VideoStore

__all__ = ["ProcessingPipeline", "StreamingService", "VideoStore"]
