from .campus_middleware import campus_middleware, campus_required, admin_required, super_required

__all__ = ["campus_middleware", "campus_required", "admin_required", "super_required"]
