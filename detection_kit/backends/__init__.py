"""
Optional inference backends for detection_kit.

Kept separate so post-processing can be used without installing an inference runtime.
"""

from __future__ import annotations

__all__ = []
