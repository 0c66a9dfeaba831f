"""
PS-LANG HTTP API package.

Run with: uvicorn pslang.api.app:app
"""

from __future__ import annotations


def main() -> None:
    """Console entry point for the API server."""
    import uvicorn

    from pslang.infrastructure.settings import API_HOST, API_PORT

    uvicorn.run("pslang.api.app:app", host=API_HOST, port=API_PORT)
