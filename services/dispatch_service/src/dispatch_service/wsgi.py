"""WSGI entry point for gunicorn.

Usage:
    gunicorn dispatch_service.wsgi:app --bind 0.0.0.0:8000
"""
from dispatch_service.app import create_app_from_env

app = create_app_from_env()
