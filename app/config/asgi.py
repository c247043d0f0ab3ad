"""
ASGI config for the rental settlement service.

Exposes the ASGI callable as a module-level variable named `application`
for Uvicorn. The service is HTTP only.

For more information on this file, see:
https://docs.djangoproject.com/en/5.2/howto/deployment/asgi/
"""

import os

from django.core.asgi import get_asgi_application

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

application = get_asgi_application()
