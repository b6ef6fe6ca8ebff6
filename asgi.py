"""
asgi.py -- Application assembly for msgboard.

Settings are read from the environment exactly once, here, and handed to
create_app(). Nothing below this point reads the environment again.

Run with:  uvicorn asgi:app --reload
"""

from api.main import create_app
from core.config import get_settings

app = create_app(get_settings())
