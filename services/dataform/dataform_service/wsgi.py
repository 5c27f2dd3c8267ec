"""WSGI config for the data form service."""
import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "dataform_service.settings")

application = get_wsgi_application()
