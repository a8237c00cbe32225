#!/usr/bin/env python3
"""
Pre-Flight Startup Checks

Run once before the engine loop:
1. Credentials present (warning only, public market data still works)
2. Server time sync (establishes the signing clock drift)
3. Private API reachable (signed account snapshot)

None of these is fatal; failures are written to the error channel and the
engine starts anyway, as the loop tolerates per-call failures.

Usage:
    from utils.startup_check import perform_startup_checks
    passed, issues = await perform_startup_checks(client, settings, log)
"""

from typing import List, Tuple

from basis_layer.utils.exchange_client import ExchangeError, WeexClient
from config.settings import Settings
from utils.event_log import EventLog


def check_credentials(settings: Settings) -> Tuple[bool, str]:
    """
    Verify the API credentials are configured.

    Returns:
        Tuple of (passed, message)
    """
    missing = []
    if not settings.api_key:
        missing.append("WEEX_API_KEY")
    if not settings.api_secret:
        missing.append("WEEX_API_SECRET")
    if not settings.passphrase:
        missing.append("WEEX_API_PASSPHRASE")
    if missing:
        return False, f"Missing env vars: {', '.join(missing)}"
    return True, "API credentials set"


async def check_server_time(client: WeexClient, log: EventLog) -> Tuple[bool, str]:
    try:
        drift = await client.sync_server_time()
    except ExchangeError as e:
        log.error("sync_time", err=str(e))
        return False, f"Server time sync failed: {e}"
    return True, f"Clock drift: {drift}ms"


async def check_private_api(client: WeexClient, log: EventLog) -> Tuple[bool, str]:
    try:
        await client.ping_private()
    except ExchangeError as e:
        log.error("account_ping", err=str(e))
        return False, f"Private API unreachable: {e}"
    log.info("account_ping", msg="private API reachable")
    return True, "Private API reachable"


async def perform_startup_checks(
    client: WeexClient,
    settings: Settings,
    log: EventLog,
) -> Tuple[bool, List[str]]:
    """
    Run all pre-flight checks.

    Returns:
        Tuple of (all_passed, list_of_issues)
    """
    issues = []

    passed, msg = check_credentials(settings)
    if not passed:
        log.error("startup_check", check="credentials", msg=msg)
        issues.append(msg)

    for check in (check_server_time, check_private_api):
        passed, msg = await check(client, log)
        if not passed:
            issues.append(msg)

    log.info("startup_check", passed=not issues, issues=len(issues))
    return not issues, issues
