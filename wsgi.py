"""
WSGI / Flask-Migrate entry point.

Usage:
    flask --app wsgi db upgrade
    flask --app wsgi schedule-preview --anchor 2026-11-02
    gunicorn wsgi:app
"""

from segflow import create_app

app = create_app()
