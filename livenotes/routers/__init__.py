"""FastAPI routers for the worker.

Routers are grouped by domain (capture, notes, ai settings).
"""
