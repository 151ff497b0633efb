"""
Single-asset collateral token balances.

Implements TokenLedger[Owner] -> Amount, the token-transfer collaborator the
perpetual engine pulls deposits from and pushes withdrawals to.
"""

from typing import Dict, Optional


# Type aliases
Owner = str
Amount = int  # Non-negative integer (arbitrary precision)


class TokenLedger:
    """
    Balance table mapping owner -> amount of the collateral token.

    Zero balances are dropped to keep the table sparse. Iteration order is not
    meaningful; `get_all_balances()` returns owners sorted.
    """

    def __init__(self, balances: Optional[Dict[Owner, Amount]] = None):
        self._balances: Dict[Owner, Amount] = {}
        for owner, amount in (balances or {}).items():
            self.set(owner, amount)

    def balance_of(self, owner: Owner) -> Amount:
        """Balance of *owner*. Returns 0 if not found."""
        return self._balances.get(owner, 0)

    def set(self, owner: Owner, amount: Amount) -> None:
        """
        Set balance for *owner*.

        Raises:
            ValueError: If amount is negative
        """
        if amount < 0:
            raise ValueError(f"Balance cannot be negative: {amount}")
        if amount == 0:
            self._balances.pop(owner, None)
        else:
            self._balances[owner] = amount

    def mint(self, owner: Owner, amount: Amount) -> None:
        if amount < 0:
            raise ValueError(f"Amount must be non-negative: {amount}")
        self.set(owner, self.balance_of(owner) + amount)

    def transfer(self, sender: Owner, recipient: Owner, amount: Amount) -> None:
        """
        Move *amount* from *sender* to *recipient*.

        Raises:
            ValueError: If amount is negative or sender's balance is insufficient
        """
        if amount < 0:
            raise ValueError(f"Amount must be non-negative: {amount}")
        current = self.balance_of(sender)
        if current < amount:
            raise ValueError(f"Insufficient balance: {sender} has {current} < {amount}")
        if sender == recipient:
            return
        self.set(sender, current - amount)
        self.set(recipient, self.balance_of(recipient) + amount)

    def total_supply(self) -> Amount:
        return sum(self._balances.values())

    def get_all_balances(self) -> Dict[Owner, Amount]:
        return {owner: self._balances[owner] for owner in sorted(self._balances)}

    def __repr__(self) -> str:
        return f"TokenLedger({len(self._balances)} entries)"
