"""
Object-storage administration service for the CMS dashboard.

This package provides a FastAPI application that copies, moves, renames,
creates and deletes files and folders inside a caller's own
``users/{uid}/`` namespace of a hosted object store.
"""
