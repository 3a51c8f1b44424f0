"""
asgi.py -- Application assembly for SessionGate.

The only module that reads process-wide settings for the HTTP server. It
builds Settings once and hands them to the app factory.

Run with:  uvicorn asgi:app --reload
"""

from api.main import create_app
from core.config import get_settings

app = create_app(get_settings())
