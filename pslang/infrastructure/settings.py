"""
Application-wide settings and environment configuration
"""

from __future__ import annotations

import os
from pathlib import Path

# Project paths
PROJECT_ROOT = Path(__file__).parent.parent.parent
PSLANG_ROOT = Path(__file__).parent.parent

# Environment
ENV = os.getenv("PSLANG_ENV", "development")
DEBUG = ENV == "development"

# API Configuration
API_HOST = os.getenv("API_HOST", "0.0.0.0")
API_PORT = int(os.getenv("API_PORT", "8000"))
LOG_LEVEL = os.getenv("PSLANG_LOG_LEVEL", "INFO")

# Public site URL used to build OAuth redirect targets
DEFAULT_APP_URL = "https://ps-lang.dev"

# CORS
DEFAULT_ALLOWED_ORIGINS = [
    "https://ps-lang.dev",
    "https://www.ps-lang.dev",
    "http://localhost:3000",
]

# Email
DEFAULT_FEEDBACK_RECIPIENT = "hello@vummo.com"
DEFAULT_EMAIL_SENDER = "PS-LANG <noreply@ps-lang.dev>"
