"""Explicit caller capabilities.

Authorization and pause state are not ambient in the ledger: whoever fronts
the vault (API layer, orchestrator, tests) builds a ``Capabilities`` value and
passes it into every call.
"""

from dataclasses import dataclass

from yieldpool.core.errors import OperationPaused, Unauthorized


@dataclass(frozen=True)
class Capabilities:
    """What the current caller is allowed to do."""

    caller: str
    admin: bool = False
    rebalancer: bool = False
    paused: bool = False

    def require_active(self) -> None:
        if self.paused:
            raise OperationPaused("Vault operations are paused")
        if not self.caller:
            raise Unauthorized("Caller identity required")

    def require_admin(self) -> None:
        if not self.admin:
            raise Unauthorized(f"{self.caller or 'anonymous'} is not an administrator")

    def require_rebalancer(self) -> None:
        self.require_active()
        if not (self.rebalancer or self.admin):
            raise Unauthorized(f"{self.caller} may not execute rebalances")

    @classmethod
    def depositor(cls, caller: str, *, paused: bool = False) -> "Capabilities":
        return cls(caller=caller, paused=paused)

    @classmethod
    def operator(cls, caller: str = "operator") -> "Capabilities":
        """Full administrative and rebalancing rights."""
        return cls(caller=caller, admin=True, rebalancer=True)
