"""
Inventory blueprint.
Items, their status lifecycle and the disposal view.
"""

from .views import inventory_bp
