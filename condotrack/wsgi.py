"""WSGI config for the condotrack project."""

import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "condotrack.settings")

application = get_wsgi_application()
