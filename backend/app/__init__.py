"""
Recipe Manager Media Backend — Application Package Initializer
===============================================================

What: Marks the `app` directory as a Python package.
Why:  Enables module imports like `from app.config import settings`.
Who:  Used implicitly by Python's import system and explicitly by pytest and uvicorn.

Architecture Note:
    The backend is layered:

    ┌─────────────────────────────────────┐
    │    Routes + Middleware (HTTP)       │  ← status codes, auth gate, caching
    ├─────────────────────────────────────┤
    │    UploadService (orchestration)    │  ← validate → transcode → persist
    ├─────────────────────────────────────┤
    │  Validation │ Transcoder │ Store    │  ← pure checks, Pillow, aiofiles
    └─────────────────────────────────────┘

    Routes never touch the filesystem or Pillow; the store is the only module
    that knows where bytes live.
"""

__version__ = "1.0.0"
