from .views import main_bp
