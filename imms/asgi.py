"""
ASGI config for the IMMS project.

Only HTTP is served; the clinical workflow has no WebSocket routes.
"""
import os

from django.core.asgi import get_asgi_application  # type: ignore

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "imms.settings")

application = get_asgi_application()
