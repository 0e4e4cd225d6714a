"""URL configuration for the passhub project.

The pass web service is mounted under ``passkit/``; PASSKIT_WEB_SERVICE_URL
must point at that prefix so that the URLs written into passes resolve here.
"""

from django.conf import settings
from django.contrib import admin
from django.urls import path

from api.api import api

admin.site.site_header = f"{settings.SITE_NAME} v{settings.VERSION} Admin"
admin.site.index_title = f"Welcome to {settings.SITE_NAME} v{settings.VERSION} Admin"
admin.site.site_title = f"{settings.SITE_NAME} v{settings.VERSION} Admin"

urlpatterns = [
    path("passkit/", api.urls),
]

if settings.ADMIN_URL:  # pragma: no cover
    urlpatterns.append(path(settings.ADMIN_URL, admin.site.urls))
