"""
CMTAT Ledger — JSON API over a live token.

FastAPI application providing:
- Token facts and per-account compliance views
- ERC-1404 restriction checks (code + message)
- Transfers and mints on behalf of an explicit caller
- Journal explorer and chain verification

Compliance failures surface as HTTP errors: `Unauthorized` → 403, any other
`ComplianceError` → 409 with `{error, message, restriction_code}`. Endpoints
whose backing service is not wired answer 503.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from cmtat_ledger.config import settings
from cmtat_ledger.core.errors import ComplianceError, Unauthorized

logger = logging.getLogger(__name__)


# ── Pydantic request models ────────────────────────────────────


class TransferRequest(BaseModel):
    caller: str
    to: str
    amount: int = Field(ge=0)
    from_: str | None = None  # set for transfer_from


class MintRequest(BaseModel):
    caller: str
    to: str
    amount: int = Field(ge=0)


class DashboardState:
    """Mutable application state injected at startup."""

    def __init__(self) -> None:
        self.token: Any = None
        self.journal: Any = None
        self.startup_time: datetime = datetime.now(timezone.utc)


state = DashboardState()


# ── Application lifecycle ──────────────────────────────────────


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup & shutdown lifecycle — deploy the token unless already wired."""
    logger.info("CMTAT API starting — token: %s", settings.token_symbol)

    if state.token is None:
        try:
            from cmtat_ledger.runtime import build_journal, build_token

            state.journal = build_journal()
            state.token = build_token(journal=state.journal)
            logger.info("API deployed token %s", settings.token_symbol)
        except Exception as exc:
            logger.warning("API could not deploy token: %s", exc)

    yield

    if state.journal is not None:
        state.journal.close()
    logger.info("CMTAT API shut down")


app = FastAPI(
    title="CMTAT Ledger",
    description="Compliance-gated token ledger",
    version="0.1.0",
    lifespan=lifespan,
)


@app.exception_handler(ComplianceError)
async def compliance_error_handler(request: Request, exc: ComplianceError) -> JSONResponse:
    status_code = 403 if isinstance(exc, Unauthorized) else 409
    return JSONResponse(
        status_code=status_code,
        content={
            "error": exc.code,
            "message": exc.message,
            "restriction_code": exc.restriction_code,
        },
    )


def _require_token() -> Any:
    if state.token is None:
        raise HTTPException(status_code=503, detail="Token not initialized")
    return state.token


def _require_journal() -> Any:
    if state.journal is None:
        raise HTTPException(status_code=503, detail="Journal not enabled")
    return state.journal


# ── Routes: Token ──────────────────────────────────────────────


@app.get("/api/token")
async def api_token():
    """Token metadata, supply and lifecycle state."""
    token = _require_token()
    return JSONResponse(token.info().model_dump(mode="json"))


@app.get("/api/accounts/{address}")
async def api_account(address: str):
    """Balance, freeze status and allowlist status of one account."""
    token = _require_token()
    return JSONResponse(token.account(address).model_dump(mode="json"))


# ── Routes: Restrictions ───────────────────────────────────────


@app.get("/api/restrictions")
async def api_restrictions(
    to: str,
    amount: int,
    from_: str = Query(alias="from"),
):
    """Pre-flight ERC-1404 check of a prospective transfer."""
    token = _require_token()
    result = token.check_transfer(from_, to, amount)
    return JSONResponse(result.model_dump(mode="json"))


@app.get("/api/restrictions/{code}/message")
async def api_restriction_message(code: int):
    token = _require_token()
    return JSONResponse({"code": code, "message": token.message_for_restriction_code(code)})


# ── Routes: Mutations ──────────────────────────────────────────


@app.post("/api/transfers")
async def api_transfer(req: TransferRequest):
    """Transfer as `caller`, or on behalf of `from_` via allowance."""
    token = _require_token()
    if req.from_ is None:
        token.transfer(req.caller, req.to, req.amount)
        source = req.caller
    else:
        token.transfer_from(req.caller, req.from_, req.to, req.amount)
        source = req.from_
    return JSONResponse({
        "status": "transferred",
        "from": token.account(source).address,
        "to": token.account(req.to).address,
        "amount": req.amount,
        "balance_from": token.balance_of(source),
        "balance_to": token.balance_of(req.to),
    })


@app.post("/api/mint")
async def api_mint(req: MintRequest):
    token = _require_token()
    token.mint(req.caller, req.to, req.amount)
    return JSONResponse({
        "status": "minted",
        "to": token.account(req.to).address,
        "amount": req.amount,
        "total_supply": token.total_supply(),
    })


# ── Routes: Journal ────────────────────────────────────────────


@app.get("/api/journal/recent")
async def api_journal_recent(limit: int = 50):
    """Most recent journal entries, newest first."""
    journal = _require_journal()
    entries = journal.get_latest_entries(limit=limit)
    return JSONResponse({
        "entries": [
            {
                "id": str(e.id),
                "sequence_number": e.sequence_number,
                "event_name": e.event_name,
                "entrypoint": e.entrypoint,
                "transaction_id": str(e.transaction_id),
                "accounts": e.accounts,
                "payload": e.payload,
                "entry_hash": e.entry_hash,
                "timestamp": e.timestamp.isoformat(),
            }
            for e in entries
        ],
        "total": journal.get_entry_count(),
    })


@app.get("/api/journal/verify")
async def api_journal_verify():
    journal = _require_journal()
    is_valid, entries_verified, message = journal.verify_chain()
    return JSONResponse({
        "valid": is_valid,
        "entries_verified": entries_verified,
        "message": message,
    })


# ── Health Check ───────────────────────────────────────────────


@app.get("/health")
async def health():
    """Health check endpoint."""
    token = state.token
    return JSONResponse({
        "status": "healthy",
        "uptime_seconds": (datetime.now(timezone.utc) - state.startup_time).total_seconds(),
        "token_available": token is not None,
        "journal_available": state.journal is not None,
        "lifecycle": token.lifecycle_state().value if token is not None else None,
    })
