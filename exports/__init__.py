from .views import exports_bp
