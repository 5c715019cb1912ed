"""
Authentication blueprint.
Handles login with campus resolution, logout and user management.
"""

from .views import auth_bp
