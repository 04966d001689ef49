import time
from typing import Annotated

from fastapi import Depends, Request

from gaia_api.core.pool import PoolManager

_STARTED_AT = time.monotonic()


def get_pool(request: Request) -> PoolManager:
    """The PoolManager owned by the application (set up in the lifespan)."""
    return request.app.state.pool


def get_uptime() -> int:
    """Whole seconds since the process imported the API layer."""
    return int(time.monotonic() - _STARTED_AT)


PoolDep = Annotated[PoolManager, Depends(get_pool)]
UptimeDep = Annotated[int, Depends(get_uptime)]
