"""
Production WSGI entry point for Gunicorn.

Gunicorn will import this file and look for a top-level variable named `app`.

Usage:
    gunicorn -w 2 -k gthread -b 0.0.0.0:$PORT wsgi:app

With more than one worker, each process keeps its own rate-limit windows
unless RATELIMIT_STORAGE_URI points at a shared backend (e.g. redis://).
"""

from auragrow import create_app

app = create_app()
