"""PS-LANG site API - consent gating, AI chat connectors and account routes"""

from __future__ import annotations

__version__ = "1.0.0"
