"""
Glynac admin client entry point.

Restores (or starts) a session, prints onboarding status and keeps the
session alive until interrupted.
"""

import asyncio

from loguru import logger

from glynac.api import EmployeeService, GlynacApi
from glynac.keys import EMPLOYEES_LIST
from glynac.scheduler import SessionScheduler
from glynac.services.client import ApiClient
from glynac.settings import global_settings


async def main() -> None:
    logger.info("Starting Glynac admin client...")

    api = GlynacApi(ApiClient())
    scheduler = SessionScheduler(api.client)

    try:
        if api.client.auth.is_authenticated:
            logger.info("Restored session, verifying token...")
            verified = await api.auth.verify()
            if not verified.success:
                logger.warning(f"Stored session rejected: {verified.error}")

        if not api.client.auth.is_authenticated:
            if not global_settings.email:
                logger.error("No session and GLYNAC_EMAIL is not set")
                return
            logger.info(f"Logging in as {global_settings.email}...")
            login = await api.auth.login(global_settings.email, global_settings.password)
            if not login.success:
                logger.error(f"Login failed: {login.error}")
                return

        user = api.client.auth.user or {}
        logger.info(
            f"Signed in as {user.get('email')} "
            f"(setup completed: {user.get('setupCompleted', False)})"
        )

        # warm the employee list while the dashboard loads
        _, stats = await asyncio.gather(
            api.client.prefetch(EMPLOYEES_LIST, EmployeeService.PATH),
            api.dashboard.get_stats(),
        )
        if stats.success and stats.data:
            logger.info(
                f"Dashboard: {stats.data.total_employees} employees, "
                f"{stats.data.departments} departments, "
                f"{stats.data.remote_workers} remote"
            )
        else:
            logger.warning(f"Dashboard unavailable: {stats.error}")

        scheduler.start()
        logger.info("Glynac client is running. Press Ctrl+C to stop.")
        while api.client.auth.is_authenticated:
            await asyncio.sleep(60)
        logger.info("Session ended")

    except (KeyboardInterrupt, asyncio.CancelledError):
        logger.info("Received interrupt signal, shutting down...")
    except Exception as e:
        logger.error(f"Error in main loop: {e}")
    finally:
        if scheduler.is_running():
            scheduler.stop()
        await api.close()
        logger.info("Glynac client stopped")


if __name__ == "__main__":
    asyncio.run(main())
