# Middleware package init
"""
Recipe Manager Media Backend — Middleware Package
==================================================

What:  Cross-cutting concerns applied to every request.

Middleware Chain (outermost first):
    Request → [Request ID] → [Logging] → [Rate Limit] → [Response Cache] → [CORS] → Route

    1. Request ID: correlation ID visible to everything below, error bodies included
    2. Logging: captures the final status, including 429s from the limiter
    3. Rate Limit: only /api/upload paths; rejects before any decode work
    4. Response Cache: image info lookups; invalidated by successful mutations

Auth is not middleware: get_current_user / get_optional_user in auth.py are
route dependencies, so public routes never pay for token parsing.
"""
