"""
Transaction model.

An Octra transfer as it travels on the wire:

    {"from": ..., "to_": ..., "amount": "<micro units>", "nonce": N,
     "ou": "1" | "3", "timestamp": <seconds>, "message"?: ...,
     "signature"?: ..., "public_key"?: ...}

Known fields are kept in a fixed schema, in the order above. Anything
else received from a peer lands in `extra` so it survives a round trip.
"""

import json
import math
import time
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Optional

from wallet.address import verify_address_format
from wallet.errors import BadInputFormat


MICRO_UNITS = 1_000_000         # 1 OCT = 1_000_000 micro-OCT
MAX_MESSAGE_BYTES = 1024
LARGE_AMOUNT_THRESHOLD = 1000   # OCT; switches `ou` and the fee tier

FEE_SMALL = 0.001
FEE_LARGE = 0.003

# Wire keys in signing order
SCHEMA_FIELDS = ("from", "to_", "amount", "nonce", "ou", "timestamp")
# Wire keys never covered by the signature
UNSIGNED_FIELDS = ("message", "signature", "public_key")


def calculate_fee(amount) -> float:
    """Informational fee in OCT for a transfer of `amount` OCT."""
    return FEE_SMALL if amount < LARGE_AMOUNT_THRESHOLD else FEE_LARGE


def to_micro_units(amount) -> int:
    """trunc(amount * 1_000_000); strings are parsed as decimals."""
    if isinstance(amount, bool):
        raise BadInputFormat("Amount must be a number")
    if isinstance(amount, str):
        try:
            amount = Decimal(amount.strip())
        except InvalidOperation as e:
            raise BadInputFormat(f"Invalid amount: {amount!r}") from e
    if not isinstance(amount, (int, float, Decimal)):
        raise BadInputFormat("Amount must be a number")
    if isinstance(amount, (float, Decimal)) and not math.isfinite(amount):
        raise BadInputFormat("Amount must be finite")
    return math.trunc(amount * MICRO_UNITS)


def truncate_message(message: str, limit: int = MAX_MESSAGE_BYTES) -> str:
    """Cut to at most `limit` UTF-8 bytes without splitting a character."""
    encoded = message.encode("utf-8")
    if len(encoded) <= limit:
        return message
    return encoded[:limit].decode("utf-8", errors="ignore")


@dataclass
class Transaction:
    """A transfer; None means the field is absent from the wire object."""
    from_address: Any = None
    to_address: Any = None
    amount: Any = None
    nonce: Any = None
    ou: Any = None
    timestamp: Any = None
    message: Optional[str] = None
    signature: Optional[str] = None
    public_key: Optional[str] = None
    extra: dict = field(default_factory=dict)

    _WIRE_TO_ATTR = {
        "from": "from_address",
        "to_": "to_address",
        "amount": "amount",
        "nonce": "nonce",
        "ou": "ou",
        "timestamp": "timestamp",
        "message": "message",
        "signature": "signature",
        "public_key": "public_key",
    }

    @classmethod
    def create(
        cls,
        from_address: str,
        to_address: str,
        amount,
        nonce: int,
        message: Optional[str] = None,
        clock: Callable[[], float] = time.time,
    ) -> "Transaction":
        """
        Build an unsigned transfer.

        Args:
            from_address: Sender address (oct...)
            to_address: Recipient address (oct...)
            amount: Amount in OCT (int, float, Decimal or decimal string)
            nonce: Account nonce for this transfer
            message: Optional memo, truncated to 1024 UTF-8 bytes
            clock: Seconds since epoch, with sub-second precision

        Raises:
            BadInputFormat: bad address, non-positive amount, bad nonce
        """
        if not verify_address_format(from_address):
            raise BadInputFormat(f"Invalid sender address: {from_address!r}")
        if not verify_address_format(to_address):
            raise BadInputFormat(f"Invalid recipient address: {to_address!r}")
        micro = to_micro_units(amount)
        if micro <= 0:
            raise BadInputFormat("Amount must be positive")
        if isinstance(nonce, bool) or not isinstance(nonce, int) or nonce < 0:
            raise BadInputFormat(f"Invalid nonce: {nonce!r}")

        numeric = Decimal(amount.strip()) if isinstance(amount, str) else amount
        return cls(
            from_address=from_address,
            to_address=to_address,
            amount=str(micro),
            nonce=int(nonce),
            ou="1" if numeric < LARGE_AMOUNT_THRESHOLD else "3",
            timestamp=clock(),
            message=truncate_message(message) if message else None,
        )

    @classmethod
    def from_dict(cls, data: dict) -> "Transaction":
        """Create from a wire mapping; unknown keys go to `extra`."""
        if not isinstance(data, dict):
            raise BadInputFormat("Transaction must be a JSON object")
        kwargs: dict = {}
        extra: dict = {}
        for key, value in data.items():
            if not isinstance(key, str):
                raise BadInputFormat("Transaction keys must be strings")
            attr = cls._WIRE_TO_ATTR.get(key)
            if attr is None:
                extra[key] = value
            else:
                kwargs[attr] = value
        return cls(extra=extra, **kwargs)

    @classmethod
    def from_json(cls, text: str) -> "Transaction":
        """Parse wire JSON, keeping fractional numbers as their exact token."""
        try:
            data = json.loads(text, parse_float=Decimal)
        except json.JSONDecodeError as e:
            raise BadInputFormat(f"Invalid transaction JSON: {e}") from e
        return cls.from_dict(data)

    def signing_fields(self) -> list[tuple[str, Any]]:
        """Schema fields in declared order, then extras sorted by key."""
        items = []
        for key in SCHEMA_FIELDS:
            value = getattr(self, self._WIRE_TO_ATTR[key])
            if value is not None:
                items.append((key, value))
        for key in sorted(self.extra):
            if key not in UNSIGNED_FIELDS:
                items.append((key, self.extra[key]))
        return items

    def to_dict(self) -> dict:
        """Wire mapping (schema order, extras, then unsigned fields)."""
        data = dict(self.signing_fields())
        for key in UNSIGNED_FIELDS:
            value = getattr(self, self._WIRE_TO_ATTR[key])
            if value is not None:
                data[key] = value
        return data

    @property
    def fee(self) -> float:
        return calculate_fee(int(self.amount) / MICRO_UNITS) if self.amount is not None else 0.0

    @property
    def is_signed(self) -> bool:
        return bool(self.signature and self.public_key)
