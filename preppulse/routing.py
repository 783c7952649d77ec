"""Navigation and notification seams used by the controllers."""

from typing import Optional, Protocol

from loguru import logger

HOME = "/"
SIGN_IN = "/sign-in"
SIGN_UP = "/sign-up"


def feedback_route(interview_id: Optional[str]) -> str:
    return f"/interview/{interview_id}/feedback"


class Navigator(Protocol):
    def push(self, route: str) -> None: ...


class Notifier(Protocol):
    def success(self, message: str) -> None: ...

    def error(self, message: str) -> None: ...


class ConsoleNavigator:
    """Navigator for the console entry point. Remembers the last route pushed."""

    def __init__(self):
        self.current: Optional[str] = None

    def push(self, route: str) -> None:
        logger.info(f"➡️ Navigate to {route}")
        self.current = route


class ConsoleNotifier:
    """Transient notifications rendered as log lines."""

    def success(self, message: str) -> None:
        logger.success(message)

    def error(self, message: str) -> None:
        logger.error(message)
