"""In-memory multi-token custody ledger.

Stands in for the value-transfer medium the engine talks to. Transfers are
all-or-nothing and move exactly the requested amount.
"""

import logging
from typing import Callable, Dict, Optional, Tuple

from .errors import InsufficientFundsError, InvalidAmountError

logger = logging.getLogger(__name__)

TransferHook = Callable[[str, str, str, int], None]


class TokenLedger:
    """Balances keyed by ``(holder, token)``."""

    def __init__(self, on_transfer: Optional[TransferHook] = None):
        self._balances: Dict[Tuple[str, str], int] = {}
        self.on_transfer = on_transfer

    def balance_of(self, holder: str, token: str) -> int:
        return self._balances.get((holder, token), 0)

    def mint(self, token: str, to: str, amount: int) -> None:
        """Credit ``amount`` of ``token`` to ``to`` out of thin air."""
        if amount <= 0:
            raise InvalidAmountError(f"mint amount must be positive, got {amount}")
        self._balances[(to, token)] = self.balance_of(to, token) + amount

    def transfer(self, token: str, sender: str, recipient: str, amount: int) -> None:
        """
        Move ``amount`` of ``token`` from ``sender`` to ``recipient``.

        Raises:
            InvalidAmountError: If amount is not positive
            InsufficientFundsError: If sender's balance is too small
        """
        if amount <= 0:
            raise InvalidAmountError(f"transfer amount must be positive, got {amount}")
        available = self.balance_of(sender, token)
        if available < amount:
            raise InsufficientFundsError(
                f"{sender} holds {available} {token}, cannot transfer {amount}"
            )
        self._balances[(sender, token)] = available - amount
        self._balances[(recipient, token)] = self.balance_of(recipient, token) + amount

        if self.on_transfer is not None:
            try:
                self.on_transfer(token, sender, recipient, amount)
            except BaseException:
                self.reverse(token, sender, recipient, amount)
                raise

        logger.debug(
            "Token transfer",
            extra={
                "event": "ledger.transfer",
                "token": token,
                "sender": sender,
                "recipient": recipient,
                "amount": amount,
            },
        )

    def reverse(self, token: str, sender: str, recipient: str, amount: int) -> None:
        """Undo a completed transfer. No checks are made and the hook does not run."""
        self._balances[(recipient, token)] = self.balance_of(recipient, token) - amount
        self._balances[(sender, token)] = self.balance_of(sender, token) + amount
