from .audit import AuditMiddleware
from .security_headers import SecurityHeadersMiddleware

__all__ = ["AuditMiddleware", "SecurityHeadersMiddleware"]
