"""
CMTAT Ledger — runtime wiring.

Central entrypoint that:
1. Configures structured logging
2. Opens the event journal (when enabled) and checks its chain
3. Deploys the token from settings and attaches the journal
4. Attaches the remote rule engine (when configured)
5. Connects the dashboard to the live token
6. Keeps running, re-verifying the journal chain on every heartbeat

Usage:
    python -m cmtat_ledger.runtime
    uvicorn cmtat_ledger.dashboard.app:app
"""

from __future__ import annotations

import asyncio
import logging
import sys

import structlog

from cmtat_ledger.config import CMTATSettings, settings
from cmtat_ledger.core.schema import LifecycleState
from cmtat_ledger.ledger.cmtat import CMTAT
from cmtat_ledger.ledger.journal import EventJournal


def configure_logging(config: CMTATSettings = settings) -> None:
    """Configure structured logging."""
    level = logging.getLevelName(config.log_level.upper())
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso"),
            (
                structlog.dev.ConsoleRenderer()
                if config.log_format != "json"
                else structlog.processors.JSONRenderer()
            ),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def build_journal(config: CMTATSettings = settings) -> EventJournal | None:
    """Open and initialize the event journal, or None when disabled."""
    if not config.journal_enabled:
        return None
    journal = EventJournal(config.journal_url)
    journal.initialize()
    return journal


def build_token(
    config: CMTATSettings = settings,
    journal: EventJournal | None = None,
) -> CMTAT:
    """
    Deploy a token from settings.

    The journal subscribes before the deployment call, so the initial mint is
    its first recorded transaction. With a journal attached the token keeps no
    in-memory event history.
    """
    token = CMTAT.deploy(
        admin=config.admin_address,
        name=config.token_name,
        symbol=config.token_symbol,
        initial_supply=config.initial_supply,
        recipient=config.initial_recipient,
        terms=config.terms,
        flag=config.flag,
        decimals=config.token_decimals,
        check_invariants=config.check_invariants,
        subscribers=[journal.record] if journal is not None else (),
        keep_history=journal is None,
    )

    if config.rule_engine_url:
        from cmtat_ledger.validation.remote import RemoteRuleEngine

        engine = RemoteRuleEngine(
            base_url=config.rule_engine_url,
            timeout=config.rule_engine_timeout_seconds,
            api_key=config.rule_engine_api_key,
        )
        token.set_rule_engine(config.admin_address, engine)

    return token


def heartbeat(
    token: CMTAT,
    journal: EventJournal | None,
    config: CMTATSettings = settings,
) -> bool:
    """
    One periodic health check.

    Re-verifies the journal chain. A broken chain pauses an active token under
    the admin address, so no further transfers are recorded on top of it.
    Returns whether the chain is intact (True when no journal is attached).
    """
    log = structlog.get_logger()
    is_valid, entries = True, 0
    if journal is not None:
        is_valid, entries, message = journal.verify_chain()
        if not is_valid:
            log.critical("cmtat.runtime.integrity_failure", message=message, entries=entries)
            if token.lifecycle_state() is LifecycleState.ACTIVE:
                token.pause(config.admin_address)
                log.warning("cmtat.runtime.token_paused", reason="journal integrity failure")

    log.debug(
        "cmtat.runtime.heartbeat",
        journal_entries=entries,
        chain_valid=is_valid,
        total_supply=token.total_supply(),
        lifecycle=token.lifecycle_state().value,
    )
    return is_valid


async def run(config: CMTATSettings = settings, max_beats: int | None = None) -> None:
    """Deploy the token, wire the dashboard and keep running periodic checks."""
    configure_logging(config)
    log = structlog.get_logger()

    log.info(
        "cmtat.runtime.starting",
        token_name=config.token_name,
        token_symbol=config.token_symbol,
        journal_enabled=config.journal_enabled,
    )

    journal = build_journal(config)
    if journal is not None:
        is_valid, entries, message = journal.verify_chain()
        if not is_valid:
            log.critical("cmtat.runtime.journal_integrity_failure", message=message, entries=entries)
            sys.exit(1)
        log.info("cmtat.runtime.journal_ready", entries=entries)

    token = build_token(config, journal=journal)
    log.info(
        "cmtat.runtime.token_deployed",
        total_supply=token.total_supply(),
        lifecycle=token.lifecycle_state().value,
        rule_engine=config.rule_engine_url or None,
    )

    from cmtat_ledger.dashboard.app import state as dashboard_state

    dashboard_state.token = token
    dashboard_state.journal = journal

    log.info("cmtat.runtime.running", message="Token ready")

    beats = 0
    try:
        while max_beats is None or beats < max_beats:
            heartbeat(token, journal, config)
            beats += 1
            await asyncio.sleep(config.heartbeat_interval_seconds)
    except asyncio.CancelledError:
        log.info("cmtat.runtime.shutdown")
    except Exception as e:
        log.exception("cmtat.runtime.fatal_error", error=str(e))
        sys.exit(1)
    finally:
        if journal is not None:
            journal.close()


def main() -> None:
    try:
        asyncio.run(run())
    except KeyboardInterrupt:
        structlog.get_logger().info("cmtat.runtime.shutdown")


if __name__ == "__main__":
    main()
