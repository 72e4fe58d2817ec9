"""
Job handlers for the account operations.

An external worker (queue transport is out of scope) calls `dispatch()` with a job
name and a JSON-like payload. Handlers return plain, JSON-compatible dicts built by
`Account.to_plain_object()` or raise a `TransactionMachineError`. Every failure is
logged; `is_retryable()` tells the worker whether the job may be attempted again.

Payloads:
- ``create_account``: account params, e.g. ``{"key": "k1", "type": "Wallet"}``
- ``get_account``: ``{"key": ...}`` or ``{"id": ...}``
- ``update_account``: ``{"query": {"key": ...}, "$set": {"status": "suspended"}}``
"""

from __future__ import annotations

from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional

from transaction_machine.errors import QueryError, TransactionMachineError, UnknownJobError
from transaction_machine.machine import TransactionMachine
from transaction_machine.utils.logging import get_logger

log = get_logger(__name__)

JobResult = Optional[Dict[str, Any]]
JobHandler = Callable[[TransactionMachine, Mapping[str, Any]], Awaitable[JobResult]]


async def create_account(machine: TransactionMachine, payload: Mapping[str, Any]) -> JobResult:
    account = await machine.create(payload)
    return account.to_plain_object()


async def get_account(machine: TransactionMachine, payload: Mapping[str, Any]) -> JobResult:
    account = await machine.get(payload)
    return account.to_plain_object() if account is not None else None


async def update_account(machine: TransactionMachine, payload: Mapping[str, Any]) -> JobResult:
    query = payload.get("query") or {}
    changes = payload.get("$set", payload.get("set")) or {}

    account = await machine.get(query)
    if account is None:
        raise QueryError(f"account not found for query {dict(query)!r}", code="not_found")
    await account.update(changes)
    return account.to_plain_object()


def is_retryable(exc: BaseException) -> bool:
    """
    Whether a job that failed with `exc` may be attempted again.

    Only typed errors can opt in (connection failures, aborted hooks); anything
    else, including unexpected exceptions, is final.
    """
    return isinstance(exc, TransactionMachineError) and exc.retryable


def _job_handlers() -> Dict[str, JobHandler]:
    """Registry of available job handlers."""
    return {
        "create_account": create_account,
        "get_account": get_account,
        "update_account": update_account,
    }


def available_jobs() -> List[str]:
    return list(_job_handlers().keys())


async def dispatch(
    machine: TransactionMachine, job_name: str, payload: Mapping[str, Any]
) -> JobResult:
    """
    Run the handler registered for `job_name`.

    Raises
    ------
    UnknownJobError
        If no handler is registered under `job_name`.
    """
    handler = _job_handlers().get(job_name)
    if handler is None:
        raise UnknownJobError(job_name)

    log.info("processing job", extra={"job": job_name})
    try:
        result = await handler(machine, payload)
    except Exception as exc:
        details = {
            "job": job_name,
            "error": type(exc).__name__,
            "reason": str(exc),
            "retryable": is_retryable(exc),
        }
        if isinstance(exc, TransactionMachineError):
            log.warning("job failed", extra=details)
        else:
            log.error("job failed", extra=details, exc_info=True)
        raise
    log.info("job completed", extra={"job": job_name})
    return result


__all__ = [
    "JobHandler",
    "available_jobs",
    "create_account",
    "dispatch",
    "get_account",
    "is_retryable",
    "update_account",
]
