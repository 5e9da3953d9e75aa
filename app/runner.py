#!/usr/bin/env python3
"""Backup relay runner service.

This script runs as a periodic service that triggers one relay run per cycle.
It can run in two modes:
1. API mode: Calls the backup-relay API (`POST /relay/run`)
2. Direct mode: Executes the pipeline in-process using the relay service

Usage:
    python runner.py [--interval SECONDS] [--mode api|direct] [--api-url URL] [--api-key KEY] [--once]
"""

import argparse
import asyncio
import logging
import os
import sys
import time
from typing import Any, Dict, List, Optional, Tuple

import httpx

from api.logging_config import configure_logging, get_logger
from api.settings import settings

try:
    configure_logging(
        log_dir=os.environ.get("LOG_DIR", "/app/logs"),
        log_level=os.environ.get("LOG_LEVEL", "INFO"),
        debug=os.environ.get("DEBUG", "").strip().lower() in ("1", "true", "yes"),
        log_filename=os.environ.get("LOG_FILENAME", "backup-relay-runner.log"),
        secrets=settings.secret_values(),
    )
except ValueError:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
logger = get_logger(__name__)

_direct_service = None


def get_env_or_file(env_name: str, file_env_name: str, default: str = "") -> str:
    """Get value from environment variable or file.

    Args:
        env_name: Environment variable name.
        file_env_name: Environment variable containing path to file.
        default: Default value if neither is set.

    Returns:
        str: The value.
    """

    value = os.environ.get(env_name, "")
    if value:
        return value

    file_path = os.environ.get(file_env_name, "")
    if file_path and os.path.exists(file_path):
        with open(file_path, "r") as f:
            return f.read().strip()

    return default


async def run_via_api(api_url: str, api_key: str, timeout: float = 3600.0) -> Optional[Dict[str, Any]]:
    """Trigger one relay run via the API.

    Args:
        api_url: Base URL of the backup-relay API.
        api_key: Admin API key.
        timeout: Request timeout; a run includes the full transfer.

    Returns:
        Optional[Dict[str, Any]]: Serialized outcome, or None when a run was
        already in progress.

    Raises:
        httpx.HTTPStatusError: On unexpected HTTP errors.
    """

    endpoint = f"{api_url}/relay/run"
    headers = {"X-Admin-Key": api_key}

    async with httpx.AsyncClient(timeout=timeout) as client:
        response = await client.post(endpoint, headers=headers)

    if response.status_code == 409:
        return None
    # A failed run is reported with 500 and a full outcome body.
    if response.status_code == 500 and response.headers.get("content-type", "").startswith("application/json"):
        body = response.json()
        if isinstance(body, dict) and "status" in body:
            return body
    response.raise_for_status()
    return response.json()


async def run_direct() -> Optional[Dict[str, Any]]:
    """Run the pipeline in-process.

    Returns:
        Optional[Dict[str, Any]]: Serialized outcome, or None when a run was
        already in progress.
    """

    # Import here to avoid loading the pipeline stack in API mode
    from backend.services.relay.config import relay_config_from_settings
    from backend.services.relay.errors import RunInProgressError
    from backend.services.relay.notification_service import NotificationService
    from backend.services.relay.relay_service import RelayService
    from backend.services.relay.serializers import outcome_to_dict

    global _direct_service
    if _direct_service is None:
        resolved = settings.resolved()
        _direct_service = RelayService(
            relay_config_from_settings(resolved),
            notifier=NotificationService.from_settings(resolved),
        )

    try:
        outcome = await _direct_service.run_once()
    except RunInProgressError:
        return None
    return outcome_to_dict(outcome)


def extract_outcome_summary(result: Any) -> Tuple[str, List[str]]:
    """Extract the status and problems from a serialized outcome.

    Args:
        result: Serialized RunOutcome (API response or direct mode).

    Returns:
        Tuple[str, List[str]]: (status, problems). Problems are the fatal
        error and any non-fatal warnings.
    """

    if not isinstance(result, dict):
        return "failure", [f"Unexpected run result type: {type(result).__name__}"]

    status = str(result.get("status", "") or "failure").lower()
    problems: List[str] = []

    if result.get("error_kind") or result.get("error_message"):
        problems.append(f"{result.get('error_kind') or 'Error'}: {result.get('error_message') or 'Unknown error'}")

    warnings = result.get("warnings")
    if isinstance(warnings, list):
        for item in warnings:
            if not isinstance(item, dict):
                continue
            problems.append(f"{item.get('kind') or 'Warning'}: {item.get('message') or ''}".rstrip())

    return status, problems


async def run_cycle(mode: str, api_url: str = "", api_key: str = "") -> Optional[Dict[str, Any]]:
    """Run one relay cycle.

    Args:
        mode: 'api' or 'direct'.
        api_url: API URL for API mode.
        api_key: API key for API mode.

    Returns:
        Optional[Dict[str, Any]]: Serialized outcome, a failure record when the
        cycle itself broke, or None when the run was skipped.
    """

    try:
        logger.info("Starting relay cycle...")

        if mode == "api":
            result = await run_via_api(api_url, api_key)
        else:
            result = await run_direct()

        if result is None:
            logger.warning("Relay run skipped: another run is still in progress")
            return None

        status, problems = extract_outcome_summary(result)
        if status == "success":
            logger.info(
                "Relay run succeeded artifact=%s remote=%s deleted=%s",
                result.get("artifact_name"),
                result.get("remote_name"),
                len(result.get("deleted_names") or []),
            )
            for problem in problems:
                logger.warning("Relay cleanup warning: %s", problem)
        else:
            for problem in problems or ["Unknown error"]:
                logger.error("Relay run failed: %s", problem)

        return result

    except Exception as e:
        logger.error("Relay cycle failed: %s", e)
        return {"status": "failure", "error_kind": type(e).__name__, "error_message": str(e)}


async def main_loop(interval: int, mode: str, api_url: str = "", api_key: str = "") -> None:
    """Main runner loop.

    Args:
        interval: Seconds between cycles.
        mode: 'api' or 'direct'.
        api_url: API URL for API mode.
        api_key: API key for API mode.
    """

    async def wait_for_api_ready(timeout_seconds: int = 120) -> None:
        """Wait until the API health endpoint is reachable."""

        deadline = time.time() + timeout_seconds
        health_url = f"{api_url}/health"

        async with httpx.AsyncClient(timeout=5.0) as client:
            while time.time() < deadline:
                try:
                    resp = await client.get(health_url)
                    if resp.status_code == 200:
                        return
                except httpx.HTTPError:
                    pass

                await asyncio.sleep(1)

    logger.info("Relay runner started (mode=%s, interval=%ss)", mode, interval)

    if mode == "api":
        logger.info("Waiting for API to become ready...")
        await wait_for_api_ready()
        logger.info("API is ready")

    while True:
        await run_cycle(mode, api_url, api_key)
        await asyncio.sleep(interval)


def main():
    """Entry point."""

    parser = argparse.ArgumentParser(description="Backup relay runner service")
    parser.add_argument(
        "--interval",
        type=int,
        default=int(os.environ.get("RUNNER_INTERVAL", "86400")),
        help="Seconds between relay cycles (default: 86400)",
    )
    parser.add_argument(
        "--mode",
        choices=["api", "direct"],
        default=os.environ.get("RUNNER_MODE", "api"),
        help="Execution mode (default: api)",
    )
    parser.add_argument(
        "--api-url",
        default=os.environ.get("RELAY_API_URL", "http://localhost:8000"),
        help="Relay API URL for API mode",
    )
    parser.add_argument(
        "--api-key",
        default=get_env_or_file("ADMIN_API_KEY", "ADMIN_API_KEY_FILE"),
        help="Admin API key for API mode",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run once and exit",
    )

    args = parser.parse_args()

    if args.mode == "api" and not args.api_key:
        logger.error("API key required for API mode. Set ADMIN_API_KEY or use --api-key")
        sys.exit(1)

    if args.once:
        result = asyncio.run(run_cycle(args.mode, args.api_url, args.api_key))
        status, _ = extract_outcome_summary(result) if result is not None else ("skipped", [])
        sys.exit(0 if status in ("success", "skipped") else 1)

    asyncio.run(main_loop(args.interval, args.mode, args.api_url, args.api_key))


if __name__ == "__main__":
    main()
