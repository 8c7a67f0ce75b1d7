"""
SnapBox backend.

A FastAPI service that keeps uploads and bookmarked URLs in a hosted
storage/database backend and handles emailed verification-code logins.
"""

__version__ = "0.1.0"
