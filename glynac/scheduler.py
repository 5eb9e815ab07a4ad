"""
Session maintenance scheduler.

Periodic jobs on APScheduler:
- token refresh before the bearer token expires
- session file sync, so a logout in another process is picked up
- idle cache entry cleanup
"""

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from loguru import logger

from glynac.services.client import ApiClient
from glynac.services.storage import FileSessionStore
from glynac.settings import global_settings
from glynac.utils import safe_func_wrapper


class SessionScheduler:
    """Keeps one ApiClient's session and cache healthy in the background."""

    def __init__(self, client: ApiClient):
        self.client = client
        self.scheduler = AsyncIOScheduler()
        self._is_running = False

    @safe_func_wrapper
    async def refresh_token_job(self) -> None:
        if not self.client.auth.is_authenticated:
            logger.debug("No session, skipping token refresh")
            return
        token = await self.client.auth.refresh()
        if token is None:
            logger.warning("Scheduled token refresh failed, session ended")
        else:
            logger.info("Scheduled token refresh completed")

    @safe_func_wrapper
    def sync_session_job(self) -> None:
        store = self.client.auth.store
        if isinstance(store, FileSessionStore):
            changes = store.sync()
            if changes:
                logger.info(f"Session file changed: {changes} keys updated")

    @safe_func_wrapper
    def cleanup_cache_job(self) -> None:
        removed = self.client.cache.cleanup_expired()
        if removed:
            logger.info(f"Cache cleanup removed {removed} idle entries")

    def start(self) -> None:
        if self._is_running:
            logger.warning("Session scheduler is already running")
            return

        refresh_minutes = global_settings.token_refresh_minutes
        self.scheduler.add_job(
            self.refresh_token_job,
            trigger="interval",
            minutes=refresh_minutes,
            id="token_refresh_job",
            name="Token Refresher",
            replace_existing=True,
        )
        if isinstance(self.client.auth.store, FileSessionStore):
            self.scheduler.add_job(
                self.sync_session_job,
                trigger="interval",
                seconds=global_settings.session_sync_seconds,
                id="session_sync_job",
                name="Session File Sync",
                replace_existing=True,
            )
        self.scheduler.add_job(
            self.cleanup_cache_job,
            trigger="interval",
            seconds=max(global_settings.query_gc_time, 1),
            id="cache_cleanup_job",
            name="Query Cache Cleanup",
            replace_existing=True,
        )

        self.scheduler.start()
        self._is_running = True
        logger.info(f"Session scheduler started: refreshing token every {refresh_minutes} minutes")

    def stop(self) -> None:
        if not self._is_running:
            logger.warning("Session scheduler is not running")
            return

        self.scheduler.shutdown(wait=False)
        self._is_running = False
        logger.info("Session scheduler stopped")

    def is_running(self) -> bool:
        return self._is_running

    async def refresh_now(self) -> str | None:
        """Refresh the token immediately (manual trigger)."""
        logger.info("Manual token refresh triggered")
        return await self.client.auth.refresh()
