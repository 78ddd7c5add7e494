"""Study tracker backend.

This package exposes the per-user data access layer (identity
resolution, ownership guards, repositories and services) behind a small
FastAPI application. Individual modules contain the concrete
implementations and documentation.
"""
