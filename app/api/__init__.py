"""API blueprints.

All blueprints are registered on the application root, the service has no
``/api`` prefix.
"""
