"""
Management blueprint.
Campuses and the per-campus catalogues of categories and sectors.
"""

from .views import management_bp
