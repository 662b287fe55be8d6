from datetime import datetime
from typing import Callable

Clock = Callable[[], datetime]


def local_now() -> datetime:
    """Current time, timezone-aware, in the server's local zone."""
    return datetime.now().astimezone()
