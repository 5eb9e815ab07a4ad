"""Settings, logging helpers and the session scheduler."""

from __future__ import annotations

import pytest
from loguru import logger

from glynac.scheduler import SessionScheduler
from glynac.services.storage import FileSessionStore
from glynac.settings import Settings
from glynac.utils import MASK, mask_secrets, safe_func_wrapper


def test_settings_defaults() -> None:
    settings = Settings.model_validate({})

    assert settings.api_base_url == "http://localhost:3000/api"
    assert settings.max_retries == 3
    assert settings.retry_delay == 1.0
    assert settings.query_stale_time == 300.0
    assert settings.session_file is None
    assert settings.debug is False


def test_settings_read_environment_names() -> None:
    settings = Settings.model_validate(
        {
            "GLYNAC_API_BASE_URL": "https://glynac.example/api",
            "GLYNAC_API_TIMEOUT": "12.5",
            "GLYNAC_MAX_RETRIES": "1",
            "GLYNAC_SESSION_FILE": "/tmp/session.json",
            "GLYNAC_DEBUG": "true",
            "UNRELATED": "ignored",
        }
    )

    assert settings.api_base_url == "https://glynac.example/api"
    assert settings.api_timeout == 12.5
    assert settings.max_retries == 1
    assert settings.session_file == "/tmp/session.json"
    assert settings.debug is True


def test_mask_secrets_masks_nested_values() -> None:
    masked = mask_secrets(
        {
            "client_id": "abc",
            "client_secret": "s3cret",
            "options": {"api_key": "k", "region": "us"},
            "password": "",
        }
    )

    assert masked == {
        "client_id": "abc",
        "client_secret": MASK,
        "options": {"api_key": MASK, "region": "us"},
        "password": "",
    }


@pytest.fixture
def log_lines():
    lines: list[str] = []
    sink = logger.add(lines.append, format="{message}")
    yield lines
    logger.remove(sink)


@pytest.mark.asyncio
async def test_safe_func_wrapper_handles_coroutines(log_lines) -> None:
    @safe_func_wrapper
    async def sign_in(email: str, password: str) -> str:
        return email

    assert await sign_in("admin123@glynac.ai", password="admin123") == "admin123@glynac.ai"
    assert any("'password': '***********'" in line for line in log_lines)
    assert not any("'password': 'admin123'" in line for line in log_lines)


def test_safe_func_wrapper_reraises_original_error() -> None:
    @safe_func_wrapper
    def explode() -> None:
        raise KeyError("boom")

    with pytest.raises(KeyError):
        explode()


@pytest.mark.asyncio
async def test_scheduler_jobs(client) -> None:
    scheduler = SessionScheduler(client)
    client.cache.write(("employees", "list"), [])

    await scheduler.refresh_token_job()
    scheduler.sync_session_job()
    scheduler.cleanup_cache_job()

    assert client.cache.read(("employees", "list")) == []
    assert await scheduler.refresh_now() is None


@pytest.mark.asyncio
async def test_scheduler_start_stop(client) -> None:
    scheduler = SessionScheduler(client)

    scheduler.start()
    assert scheduler.is_running()
    job_ids = {job.id for job in scheduler.scheduler.get_jobs()}
    assert job_ids == {"token_refresh_job", "cache_cleanup_job"}

    scheduler.stop()
    assert not scheduler.is_running()


@pytest.mark.asyncio
async def test_scheduler_syncs_file_store(tmp_path) -> None:
    from glynac.services.client import ApiClient

    path = tmp_path / "session.json"
    async with ApiClient(base_url="http://glynac.test/api", store=FileSessionStore(path)) as client:
        scheduler = SessionScheduler(client)
        scheduler.start()
        job_ids = {job.id for job in scheduler.scheduler.get_jobs()}
        scheduler.stop()

    assert "session_sync_job" in job_ids
