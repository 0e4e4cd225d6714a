"""WSGI config for the passhub project."""

import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "passhub.settings")

application = get_wsgi_application()
