"""Router helpers."""

from .error_handling import error_detail, handle_page_errors, status_for

__all__ = ["error_detail", "handle_page_errors", "status_for"]
