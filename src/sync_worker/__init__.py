"""Celery worker for scheduled order syncs."""
