"""Notifications app.

Stores per-user notifications and delivers "new message" notifications
for the messaging app through a detached Celery task.
"""
