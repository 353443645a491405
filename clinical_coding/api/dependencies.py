"""Dependency injection for the API.

Handlers receive the wired ServiceContainer and the acting principal through
FastAPI dependencies so tests can override either. The container itself is
built once by the application lifespan and kept on ``app.state``.
"""

import logging
from typing import Annotated, Optional

from fastapi import Depends, Header, Request

from clinical_coding.container import ServiceContainer

logger = logging.getLogger(__name__)

ANONYMOUS = "anonymous"


def get_container(request: Request) -> ServiceContainer:
    """The service container built at startup.

    Raises:
        RuntimeError: If the application lifespan has not run
    """
    container = getattr(request.app.state, "container", None)
    if container is None:
        raise RuntimeError("Service container is not initialised; the application lifespan has not started")
    return container


def get_current_user(x_user: Annotated[Optional[str], Header()] = None) -> str:
    """Acting principal from the X-User header.

    Identity is established upstream; a missing header is treated as anonymous.
    """
    if x_user is None or not x_user.strip():
        return ANONYMOUS
    return x_user.strip()


# Type aliases for dependency injection
ContainerDep = Annotated[ServiceContainer, Depends(get_container)]
UserDep = Annotated[str, Depends(get_current_user)]
