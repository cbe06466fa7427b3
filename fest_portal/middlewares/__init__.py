from .request_id_middleware import *
from .security_middleware import *
from .auth_middleware import *
from .access_middleware import *

__all__ = [
    "RequestIDMiddleware",
    "SecurityHeadersMiddleware",
    "AuthMiddleware",
    "AuthState",
    "get_current_user",
    "require_access",
    "load_gate",
]
