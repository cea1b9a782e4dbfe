"""
WSGI / Flask-Migrate entry point.

Usage:
    flask --app wsgi db upgrade
    flask --app wsgi seed-demo --client C001
    gunicorn wsgi:app
"""

from calendario import create_app

app = create_app()
