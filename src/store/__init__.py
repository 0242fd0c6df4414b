"""Storage and versioning layer.

This module persists fetched cat images with their metadata in a
nested-bucket engine, one version per distinct source URL.
"""
