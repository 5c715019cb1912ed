"""
Maintenance blueprint.
Client cache reconciliation, campus diagnostics and database repairs.
"""

from .views import maintenance_bp
