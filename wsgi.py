"""
Flask-Migrate / Alembic entry point and WSGI app for the reporting API.

Usage:
    FLASK_APP=wsgi.py flask db upgrade
    gunicorn wsgi:app
"""

from status_reconciler import create_app

app = create_app()
