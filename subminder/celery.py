from celery import Celery

# Create Celery app
celery = Celery("subminder")

# Load configuration from subminder.config.celeryconfig module
celery.config_from_object("subminder.config.celeryconfig")
