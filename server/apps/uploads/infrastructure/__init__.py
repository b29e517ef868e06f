"""Infrastructure layer for uploads app.

This package contains the byte-level and filesystem pieces:
- Boundary scanning over a bounded stream window
- Multipart body extraction
- Content addressing (hashing)
- Filesystem-backed content store

Keep infrastructure concerns separate from request handling logic.
"""
