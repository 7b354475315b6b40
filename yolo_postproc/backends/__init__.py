"""
Optional inference engines for yolo_postproc.

Engines are kept in a separate module so post-processing stays lightweight and
can be used without installing inference runtimes.
"""

from __future__ import annotations

__all__ = []
