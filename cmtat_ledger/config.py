"""CMTAT Ledger — application configuration via environment variables."""

from __future__ import annotations

from pydantic_settings import BaseSettings


class CMTATSettings(BaseSettings):
    """Central configuration loaded from environment / .env file (prefix CMTAT_)."""

    model_config = {
        "env_prefix": "CMTAT_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    # ── Deployment ─────────────────────────────────────────────
    token_name: str = "CMTAT Token"
    token_symbol: str = "CMTAT"
    token_decimals: int = 18
    admin_address: str = "0x123456789abcdef0123456789abcdef0123456789abcdef0123456789abcde"
    initial_recipient: str = "0x123456789abcdef0123456789abcdef0123456789abcdef0123456789abcde"
    initial_supply: int = 1_000_000 * 10**18
    terms: str = "0x54657374546f6b656e"  # "TestToken"
    flag: str = "0x1"

    # ── Compliance ─────────────────────────────────────────────
    check_invariants: bool = False

    # ── Event journal ──────────────────────────────────────────
    journal_enabled: bool = False
    journal_url: str = "sqlite:///cmtat_journal.db"

    # ── External rule engine ───────────────────────────────────
    rule_engine_url: str = ""
    rule_engine_api_key: str = ""
    rule_engine_timeout_seconds: float = 5.0

    # ── Dashboard ──────────────────────────────────────────────
    dashboard_host: str = "0.0.0.0"
    dashboard_port: int = 8000

    # ── Runtime ────────────────────────────────────────────────
    heartbeat_interval_seconds: float = 60.0

    # ── Logging ────────────────────────────────────────────────
    log_level: str = "INFO"
    log_format: str = "json"


settings = CMTATSettings()
