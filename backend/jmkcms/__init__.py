"""Application package for the JMK Contents CMS backend.

This package exposes the store, repository, service and session modules
used by the FastAPI application. It is intentionally lightweight;
individual modules contain the concrete implementations and documentation.
"""
