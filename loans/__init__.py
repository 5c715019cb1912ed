"""
Loans blueprint.
Lends items to borrowers and registers their return.
"""

from .views import loans_bp
