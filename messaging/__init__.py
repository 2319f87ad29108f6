"""Messaging app initialization.

The messaging app provides direct (1-to-1) conversations between users:
conversation resolution, message delivery, read state and the realtime
change feed.  It registers itself with Django via the MessagingConfig class.
"""
