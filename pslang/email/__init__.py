"""Transactional email and audience contacts"""

from __future__ import annotations

from pslang.email.sender import ContactOutcome, ResendClient, mask_email

__all__ = ["ContactOutcome", "ResendClient", "mask_email"]
