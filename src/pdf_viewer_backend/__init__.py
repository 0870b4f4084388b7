"""
PDF Viewer Backend - page raster and transform pipeline behind a REST API

This package keeps the visual state of one multi-page PDF per viewer session
consistent under asynchronous, cancellable rendering, and rebuilds an edited
output PDF from it:

- PDF uploads (or downloads from the persistence service) and validation
- Per-page thumbnails and full-page rasters rendered on worker pools
- Global zoom, per-page rotation and multi-page selection
- Export of the original pages with their accumulated rotation
- Upload of the exported document to the persistence service

Key Components:
    - main: FastAPI application and HTTP endpoint definitions
    - session: Viewer sessions and the session registry
    - render_scheduler: Generation-token render scheduling and cancellation
    - transform_state: Pure scale/rotation/selection transitions
    - raster_cache: Latest thumbnail and full-page raster per page
    - document_loader / export_builder: PDF in, PDF out (PyMuPDF)
    - gateway: Persistence service client
    - configuration: Config loading, overrides and logging setup

Usage:
    Run the API server with:
        uvicorn pdf_viewer_backend.main:app --reload --host 0.0.0.0 --port 8000
"""
