"""
modpolicy
=========

Keeps a live, deduplicated view of the ban rules published in one or more
Matrix policy rooms and logs every rule that is added, modified or removed.
"""

import os
import sys
from pathlib import Path

def resolve_base_dir() -> Path:
    """Determine the base directory of the project.

    Resolution order:
    1. MODPOLICY_HOME environment variable, if set.
    2. If running in a frozen/compiled context (e.g., PyInstaller, Nuitka), use the executable's directory.
    3. Otherwise, assume running from source and use the grandparent of this file's directory.
    """
    if env_home := os.getenv("MODPOLICY_HOME"):
        return Path(env_home).resolve()

    if getattr(sys, "frozen", False) or getattr(sys, "compiled", False):
        return Path(sys.argv[0]).resolve().parent

    return Path(__file__).resolve().parents[2]

BASE_DIR = resolve_base_dir()

import asyncio
from typing import List
from dotenv import load_dotenv

from modpolicy.configuration.app_configuration import CONFIG_PATH, AppConfig
from modpolicy.datatypes.policy_datatypes import ListRuleChange
from modpolicy.policy.list_manager import PolicyListManager
from modpolicy.policy.policy_list import PolicyList
from modpolicy.scheduler.list_sync_scheduler import ListSyncScheduler
from modpolicy.store.matrix_store import MatrixPolicyStore
from modpolicy.util.logger import get_logger


logger = get_logger("main")


def load_environment() -> str:
    """Load environment variables and return the Matrix access token.

    Returns
    -------
    str
        Access token extracted from the loaded environment.

    Raises
    ------
    SystemExit
        If the required ``MATRIX_ACCESS_TOKEN`` variable is missing.
    """
    load_dotenv(dotenv_path=BASE_DIR / ".env")
    token = os.getenv("MATRIX_ACCESS_TOKEN")
    if not token:
        logger.critical("'MATRIX_ACCESS_TOKEN' environment variable not set. Cannot start.")
        sys.exit(1)
    return token


def log_changes(policy_list: PolicyList, changes: List[ListRuleChange]) -> None:
    """Update listener that writes one line per rule change."""
    for change in changes:
        rule = change.rule
        logger.info(
            "[%s] %s %s rule for %s (%s) by %s: %s",
            policy_list.list_shortcode or policy_list.room_ref,
            change.change_type,
            rule.kind.name.lower(),
            rule.entity,
            rule.recommendation,
            change.sender,
            rule.reason,
        )


async def run(config: AppConfig, access_token: str) -> None:
    """Sync every configured list once, then keep them in sync until cancelled."""
    if not config.homeserver_url:
        logger.critical("'homeserver_url' is not configured. Cannot start.")
        return
    if not config.policy_lists:
        logger.warning("No policy lists configured; nothing to watch.")
        return

    async with MatrixPolicyStore(
        config.homeserver_url,
        access_token,
        timeout_seconds=config.request_timeout_seconds,
    ) as store:
        manager = PolicyListManager(store, config.batching)
        manager.add_update_listener(log_changes)
        for entry in config.policy_lists:
            manager.watch_list(entry.room_id, entry.ref)

        await manager.sync_all()
        for policy_list in manager.lists:
            logger.info(
                "Policy list %s: %d server, %d user and %d room ban rules",
                policy_list.room_ref,
                len(policy_list.server_rules),
                len(policy_list.user_rules),
                len(policy_list.room_rules),
            )

        scheduler = ListSyncScheduler("policy lists", manager.sync_all, lambda: config.list_sync_interval)
        scheduler.start()
        try:
            await asyncio.Event().wait()
        finally:
            await scheduler.shutdown()
            await manager.shutdown()


def main() -> int:
    """Entry point for the ``modpolicy`` console script."""
    os.chdir(BASE_DIR)
    access_token = load_environment()
    config = AppConfig(BASE_DIR / CONFIG_PATH)

    try:
        asyncio.run(run(config, access_token))
    except KeyboardInterrupt:
        logger.info("Shutdown requested by user.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
