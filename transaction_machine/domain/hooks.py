"""
Pre/post hook pipeline for account operations.

Each account type owns a `HookPipeline`. A pipeline stores its own steps per
(stage, operation) and points at its parent type's pipeline; the effective chain is
the parent's effective chain followed by the type's own steps, resolved every time
the chain runs. Registering on a subtype therefore never leaks into the base or its
siblings, while registering on the base reaches every subtype.

A step is any callable `step(account, *args)`, sync or async. Raising aborts the
chain: on the pre side the operation is skipped, on the post side the operation has
already been persisted and only the error is reported.
"""

from __future__ import annotations

import inspect
from collections import defaultdict
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, Union

from transaction_machine.errors import HookAbortError
from transaction_machine.utils.logging import get_logger

log = get_logger(__name__)

PRE = "pre"
POST = "post"
STAGES = (PRE, POST)

Hook = Callable[..., Union[None, Awaitable[None]]]


def _hook_name(hook: Hook) -> str:
    return getattr(hook, "__qualname__", None) or repr(hook)


class HookPipeline:
    """Ordered, layered hook lists for one account type."""

    def __init__(self, parent: Optional["HookPipeline"] = None) -> None:
        self.parent = parent
        self._steps: Dict[Tuple[str, str], List[Hook]] = defaultdict(list)

    def register(self, stage: str, operation: str, hook: Hook) -> None:
        if stage not in STAGES:
            raise ValueError(f"unknown hook stage {stage!r}, expected one of {STAGES}")
        if not callable(hook):
            raise TypeError(f"hook for {stage}-{operation} must be callable, got {hook!r}")
        self._steps[(stage, operation)].append(hook)

    def chain(self, stage: str, operation: str) -> List[Hook]:
        """Effective steps for `stage`/`operation`: inherited ones first."""
        inherited = self.parent.chain(stage, operation) if self.parent else []
        return inherited + list(self._steps.get((stage, operation), ()))

    async def run(self, stage: str, operation: str, account: Any, *args: Any) -> None:
        """
        Run the chain in order, stopping at the first failing step.

        Raises
        ------
        HookAbortError
            If a step raised; the step's exception is the `__cause__`. A step that
            raises `HookAbortError` itself is propagated unchanged.
        """
        for position, hook in enumerate(self.chain(stage, operation), start=1):
            try:
                result = hook(account, *args)
                if inspect.isawaitable(result):
                    await result
            except HookAbortError:
                raise
            except Exception as exc:
                name = _hook_name(hook)
                log.warning(
                    "hook aborted operation",
                    extra={
                        "stage": stage,
                        "operation": operation,
                        "hook": name,
                        "position": position,
                        "reason": str(exc),
                    },
                )
                raise HookAbortError(stage, operation, name, str(exc)) from exc


__all__ = ["HookPipeline", "Hook", "PRE", "POST", "STAGES"]
