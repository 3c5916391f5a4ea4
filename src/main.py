"""Sync client entry point: wires the engine to the Todo Service and push channel."""

import asyncio
import contextlib
from datetime import date

import structlog

from core.config import settings
from core.logging import setup_logging
from domain.entities.view import ViewWindow
from domain.repositories.todo_repository import ITodoRepository
from domain.services.push_router import PushInvalidationRouter
from domain.services.todo_sync_service import TodoSyncService
from infrastructure.http.http_todo_repo import HttpTodoRepository
from infrastructure.push.connection import PushConnection
from infrastructure.push.transport import HttpStreamPushTransport, IPushTransport

logger = structlog.get_logger()


def create_service(
    repository: ITodoRepository, selected_date: date | None = None
) -> TodoSyncService:
    """Create the sync engine over a repository."""
    view = ViewWindow(
        selected_date=selected_date or date.today(),
        days=settings.default_view_days,
    )
    return TodoSyncService(repository, view=view)


def create_push_connection(transport: IPushTransport) -> PushConnection:
    return PushConnection(
        transport,
        reconnect_delay=settings.push_reconnect_delay_seconds,
        max_attempts=settings.push_max_reconnect_attempts,
    )


async def main() -> None:
    """Load the current view and follow push notifications until cancelled."""
    setup_logging()
    repository = HttpTodoRepository()
    transport = HttpStreamPushTransport()
    service = create_service(repository)
    connection = create_push_connection(transport)
    router = PushInvalidationRouter(service)

    router.attach(connection)
    connection.on_connection_established(
        lambda: logger.info("push_channel_ready", url=settings.push_url)
    )
    logger.info(
        "sync_client_starting",
        app_name=settings.app_name,
        env=settings.app_env,
        api_base_url=settings.api_base_url,
        dates=[d.isoformat() for d in service.visible_dates()],
    )

    try:
        await connection.connect()
        await service.load_current_view()
        if service.error:
            logger.warning("initial_load_failed", message=service.error)
        else:
            for day in service.visible_dates():
                logger.info("todos_visible", date=day.isoformat(), count=len(service.snapshot(day) or ()))
        await connection.wait_closed()
    finally:
        await router.aclose()
        await connection.disconnect()
        await transport.aclose()
        await repository.aclose()
        logger.info("sync_client_stopped")


if __name__ == "__main__":
    with contextlib.suppress(KeyboardInterrupt):
        asyncio.run(main())
