"""
Inference adapters for detect_kit.

Kept in a separate module so the decode pipeline stays importable without an
inference runtime installed.
"""

from __future__ import annotations

__all__ = []
