"""
Celery Configuration for Commerce Returns

HOW IT WORKS:
1. A return is created or received -> the service commits and responds
2. After commit, a notification task is pushed to the Redis queue
3. Celery worker picks it up and emails the customer
4. A rolled-back operation never queues anything
"""

import os
from celery import Celery

# Set the default Django settings module
os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'commerce_returns.settings')

# Create the Celery app
app = Celery('commerce_returns')

# Load config from Django settings (all settings starting with CELERY_)
app.config_from_object('django.conf:settings', namespace='CELERY')

# Auto-discover tasks.py in all installed apps
app.autodiscover_tasks()
