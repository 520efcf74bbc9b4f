from roombook.security.dependencies import require_admin_api_key

__all__ = ["require_admin_api_key"]
