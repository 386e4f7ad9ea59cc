"""
Niobium: snapshot a FastAPI app into static objects on S3.

Public exports:
- deploy: run the full snapshot-diff-publish pipeline
- load_app: discover routes and static mounts of a host application
- expand_routes: flatten discovered routes into URL paths
- compute_fingerprint: content hash stored as object metadata
"""

from __future__ import annotations

__version__ = "1.0.0"

from niobium.fingerprint import compute_fingerprint
from niobium.interception import load_app
from niobium.pipeline import deploy
from niobium.routes import expand_routes

__all__ = ["__version__", "compute_fingerprint", "deploy", "expand_routes", "load_app"]
