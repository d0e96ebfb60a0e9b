# Services package init
"""
Recipe Manager Media Backend — Services Layer
==============================================

What:  Upload pipeline and supporting services, independent of HTTP.

Service Inventory:
    - validation:          MIME / size / payload checks (pure functions)
    - ImageTranscoder:     Pillow decode + three WebP variants
    - LocalAssetStore:     aiofiles-backed flat directory of variants
    - UploadService:       orchestrates upload, delete, info, stats, cleanup
    - AuthService:         HS256 access token verification
    - RetentionSweeper:    age-based cleanup plus its schedulers
    - MemoryCache:         expiring key/value backend for the response cache
    - MonitoringService:   request and upload counters

Collaborators are built once per application in create_app() and passed
in; routes reach them through request.app.state.
"""
