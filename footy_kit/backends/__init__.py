"""
Inference engine adapters for footy_kit.

Backends are kept in a separate module so core functionality (conversion,
packing, decoding) stays lightweight and can be used without installing an
inference runtime.
"""

from __future__ import annotations

__all__ = []
