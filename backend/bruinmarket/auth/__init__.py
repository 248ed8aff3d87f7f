"""Session-token authentication (JWT).

Services:
    - create_access_token / decode_access_token: HS256 token round trip.
    - get_current_user_id: FastAPI dependency for bearer-authenticated routes.
"""

from .service import (
    InvalidTokenError,
    create_access_token,
    decode_access_token,
    get_current_user_id,
)

__all__ = [
    "InvalidTokenError",
    "create_access_token",
    "decode_access_token",
    "get_current_user_id",
]
