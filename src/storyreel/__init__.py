"""storyreel: scene preview and real-time export for narrated story reels."""

__version__ = "0.1.0"
