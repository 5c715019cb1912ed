"""
Support blueprint.
Public submission of support requests and their follow-up by technicians.
"""

from .views import support_bp
