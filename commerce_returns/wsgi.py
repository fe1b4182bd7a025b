"""
WSGI config for Commerce Returns.
"""

import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'commerce_returns.settings')

application = get_wsgi_application()
