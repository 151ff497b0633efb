"""
Operator table: who may act on behalf of an account.

Two levels, mirroring how the ledger authorizes calls:
- global operators (set by the admin) may act for every account and are the
  only identities trade batches may route through,
- local operators are delegated by an account owner for that account only.

An account always has permissions over itself.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
from typing import Dict, Set, Tuple

from ..core.perpetual.errors import LedgerGuardError

logger = logging.getLogger(__name__)


@dataclass
class OperatorRegistry:
    admin: str
    _global: Set[str] = field(default_factory=set)
    _local: Set[Tuple[str, str]] = field(default_factory=set)  # (account, operator)

    def set_global_operator(self, sender: str, operator: str, approved: bool) -> None:
        if sender != self.admin:
            raise LedgerGuardError("sender_not_admin", f"{sender!r} is not the admin")
        if approved:
            self._global.add(operator)
        else:
            self._global.discard(operator)
        logger.info("global operator %s approved=%s", operator, approved)

    def set_local_operator(self, sender: str, operator: str, approved: bool) -> None:
        """Delegate (or revoke) *operator* for the sender's own account."""
        if approved:
            self._local.add((sender, operator))
        else:
            self._local.discard((sender, operator))
        logger.info("local operator %s for %s approved=%s", operator, sender, approved)

    def is_global_operator(self, identity: str) -> bool:
        return identity in self._global

    def is_local_operator(self, account: str, operator: str) -> bool:
        return (account, operator) in self._local

    def has_account_permissions(self, account: str, operator: str) -> bool:
        return (
            account == operator
            or self.is_global_operator(operator)
            or self.is_local_operator(account, operator)
        )

    def global_operators(self) -> Dict[str, bool]:
        return {op: True for op in sorted(self._global)}
