import httpx
import pytest

import runner


REAL_ASYNC_CLIENT = httpx.AsyncClient


def _mock_async_client(monkeypatch, handler):
    def factory(**kwargs):
        return REAL_ASYNC_CLIENT(transport=httpx.MockTransport(handler), **kwargs)

    monkeypatch.setattr(runner.httpx, "AsyncClient", factory)


def test_extract_outcome_summary_collects_error_and_warnings():
    status, problems = runner.extract_outcome_summary(
        {
            "status": "success",
            "warnings": [{"kind": "DeleteError", "message": "HTTP 423"}, "junk"],
        }
    )

    assert status == "success"
    assert problems == ["DeleteError: HTTP 423"]

    status, problems = runner.extract_outcome_summary({"status": "failure", "error_kind": "TransferError", "error_message": "down"})
    assert status == "failure"
    assert problems == ["TransferError: down"]


def test_extract_outcome_summary_rejects_non_dict():
    status, problems = runner.extract_outcome_summary(["nope"])

    assert status == "failure"
    assert problems == ["Unexpected run result type: list"]


@pytest.mark.asyncio
async def test_run_via_api_posts_with_admin_key(monkeypatch):
    seen = {}

    def handler(request):
        seen["path"] = request.url.path
        seen["key"] = request.headers.get("X-Admin-Key")
        return httpx.Response(200, json={"status": "success"})

    _mock_async_client(monkeypatch, handler)

    result = await runner.run_via_api("http://relay.test", "k1")

    assert result == {"status": "success"}
    assert seen == {"path": "/relay/run", "key": "k1"}


@pytest.mark.asyncio
async def test_run_via_api_returns_failed_outcome_and_skips_conflicts(monkeypatch):
    _mock_async_client(monkeypatch, lambda request: httpx.Response(500, json={"status": "failure", "error_kind": "UploadError"}))
    assert (await runner.run_via_api("http://relay.test", "k1"))["error_kind"] == "UploadError"

    _mock_async_client(monkeypatch, lambda request: httpx.Response(409, json={"detail": "busy"}))
    assert await runner.run_via_api("http://relay.test", "k1") is None


@pytest.mark.asyncio
async def test_run_cycle_turns_exceptions_into_failure_record(monkeypatch):
    async def broken():
        raise RuntimeError("settings unreadable")

    monkeypatch.setattr(runner, "run_direct", broken)

    result = await runner.run_cycle("direct")

    assert result == {"status": "failure", "error_kind": "RuntimeError", "error_message": "settings unreadable"}


@pytest.mark.asyncio
async def test_run_cycle_passes_through_skipped_run(monkeypatch):
    async def skipped():
        return None

    monkeypatch.setattr(runner, "run_direct", skipped)

    assert await runner.run_cycle("direct") is None


def test_get_env_or_file_prefers_env_then_file(monkeypatch, tmp_path):
    secret = tmp_path / "key"
    secret.write_text("from-file\n")
    monkeypatch.delenv("RUNNER_TEST_KEY", raising=False)
    monkeypatch.setenv("RUNNER_TEST_KEY_FILE", str(secret))

    assert runner.get_env_or_file("RUNNER_TEST_KEY", "RUNNER_TEST_KEY_FILE") == "from-file"

    monkeypatch.setenv("RUNNER_TEST_KEY", "from-env")
    assert runner.get_env_or_file("RUNNER_TEST_KEY", "RUNNER_TEST_KEY_FILE") == "from-env"
