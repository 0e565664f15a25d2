"""
FastAPI Authentication Dependencies
This module provides dependency functions that resolve the logged-in user from the
signed session cookie set by SessionMiddleware.
Usage in endpoints:
    @router.get("/protected")
    def protected_route(user: User = Depends(get_current_user)):
        return {"user": user.username}
Flow:
1. Client logs in with username/password, /api/login stores user_id in the session
2. Browser sends the session cookie back on every request
3. get_current_user() reads user_id from the session before touching the database
4. Returns the User row to the route handler
"""

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from littlefish.core.errors import Unauthorized
from littlefish.db.session import get_db
from littlefish.models.users import User

SESSION_USER_KEY = "user_id"
SESSION_WALLET_KEY = "wallet_address"
SESSION_WALLET_CONNECTED_KEY = "wallet_connected_at"


def get_session_user_id(request: Request) -> int:
    """
    Return the user id stored in the session.
    Raises Unauthorized without querying the database when there is no session.
    """
    user_id = request.session.get(SESSION_USER_KEY)
    if user_id is None:
        raise Unauthorized()
    return int(user_id)


def get_current_user(
    request: Request,
    user_id: int = Depends(get_session_user_id),
    db: Session = Depends(get_db),
) -> User:
    user = db.get(User, user_id)
    if user is None:
        # stale cookie for a deleted account
        request.session.clear()
        raise Unauthorized()
    return user

