"""
WSGI config for BAZAAR project.
"""

import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'bazaar_core.settings')

application = get_wsgi_application()
