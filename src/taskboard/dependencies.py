from __future__ import annotations

from fastapi import Request

from .session import BoardSession


# PUBLIC_INTERFACE
def get_session(request: Request) -> BoardSession:
    """
    Dependency returning the board session opened by the application lifespan.
    """
    return request.app.state.session
