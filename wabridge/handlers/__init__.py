"""Bus handlers for wabridge.

NotificationRouter subscribes to the bridge's message and lifecycle
events when constructed and applies them one at a time.
"""
