# Routes package init
"""
Recipe Manager Media Backend — API Routes Package
==================================================

Route Inventory:
    - upload.py:  POST   /api/upload/image        (upload and transcode)
                  DELETE /api/upload/image        (delete all variants)
                  GET    /api/upload/image/info   (size and dimensions)
                  GET    /api/upload/stats        (storage statistics)
                  POST   /api/upload/cleanup      (retention sweep)
    - health.py:  GET    /health, /health/detailed, /ready, /live, /metrics

Routes are thin: extract request data, call UploadService, wrap the result.
Errors propagate as exceptions to the handlers registered in main.py.
"""
