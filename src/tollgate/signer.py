"""EIP-3009 payment authorizations and the x402 payment header.

The signer is the only component holding key material. It signs a
``TransferWithAuthorization`` bound to {payee, value, validBefore} as
EIP-712 typed data; the facilitator later submits it on-chain.
"""

from __future__ import annotations

import base64
import json
import secrets
import time
from dataclasses import dataclass, replace
from typing import Any, Protocol, runtime_checkable

from eth_account import Account
from eth_account.messages import encode_typed_data

from tollgate.constants import X402_SCHEME, X402_VERSION


class SignerError(Exception):
    """The signing credential is unusable or cannot sign for the principal."""


_TRANSFER_WITH_AUTHORIZATION_TYPES: dict[str, list[dict[str, str]]] = {
    "EIP712Domain": [
        {"name": "name", "type": "string"},
        {"name": "version", "type": "string"},
        {"name": "chainId", "type": "uint256"},
        {"name": "verifyingContract", "type": "address"},
    ],
    "TransferWithAuthorization": [
        {"name": "from", "type": "address"},
        {"name": "to", "type": "address"},
        {"name": "value", "type": "uint256"},
        {"name": "validAfter", "type": "uint256"},
        {"name": "validBefore", "type": "uint256"},
        {"name": "nonce", "type": "bytes32"},
    ],
}


# ---------------------------------------------------------------------------
# PaymentAuthorization
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PaymentAuthorization:
    """A signed transfer authorization. ``value`` is in asset base units."""

    from_address: str
    to: str
    value: int
    valid_after: int
    valid_before: int
    nonce: str
    asset: str
    signature: str = ""

    def message(self) -> dict[str, Any]:
        return {
            "from": self.from_address,
            "to": self.to,
            "value": self.value,
            "validAfter": self.valid_after,
            "validBefore": self.valid_before,
            "nonce": self.nonce,
        }

    def to_header(self, network: str) -> str:
        """Base64 JSON envelope sent as the x402 ``paymentHeader``."""
        envelope = {
            "x402Version": X402_VERSION,
            "scheme": X402_SCHEME,
            "network": network,
            "payload": {
                "from": self.from_address,
                "to": self.to,
                "value": str(self.value),
                "validAfter": self.valid_after,
                "validBefore": self.valid_before,
                "nonce": self.nonce,
                "signature": self.signature,
                "asset": self.asset,
            },
        }
        raw = json.dumps(envelope, separators=(",", ":")).encode()
        return base64.b64encode(raw).decode()


# ---------------------------------------------------------------------------
# Signers
# ---------------------------------------------------------------------------


@runtime_checkable
class PaymentSigner(Protocol):
    """Signs transfer authorizations for exactly one address."""

    @property
    def address(self) -> str: ...

    def sign_authorization(self, authorization: PaymentAuthorization) -> str: ...


class LocalAccountSigner:
    """``eth-account`` signer over a locally held private key."""

    def __init__(
        self,
        private_key: str,
        chain_id: int,
        asset_address: str,
        asset_name: str,
        asset_version: str,
    ) -> None:
        try:
            self._account = Account.from_key(private_key)
        except (ValueError, TypeError) as e:
            # Never echo the key itself
            raise SignerError("Signing credential is not a valid private key.") from e
        self._domain = {
            "name": asset_name,
            "version": asset_version,
            "chainId": chain_id,
            "verifyingContract": asset_address,
        }

    @property
    def address(self) -> str:
        return self._account.address

    def typed_data(self, authorization: PaymentAuthorization) -> dict[str, Any]:
        return {
            "types": _TRANSFER_WITH_AUTHORIZATION_TYPES,
            "primaryType": "TransferWithAuthorization",
            "domain": self._domain,
            "message": authorization.message(),
        }

    def sign_authorization(self, authorization: PaymentAuthorization) -> str:
        if authorization.from_address.lower() != self.address.lower():
            raise SignerError(
                f"Signing credential controls {self.address}, not {authorization.from_address}."
            )
        signable = encode_typed_data(full_message=self.typed_data(authorization))
        signed = self._account.sign_message(signable)
        signature = signed.signature.hex()
        if not signature.startswith("0x"):
            signature = f"0x{signature}"
        return signature


def build_authorization(
    signer: PaymentSigner,
    principal: str,
    payee: str,
    value: int,
    asset: str,
    validity_secs: int,
    now: int | None = None,
) -> PaymentAuthorization:
    """Create and sign an authorization valid from now until now + validity_secs.

    Raises SignerError if the signer does not control ``principal``.
    """
    issued_at = int(time.time()) if now is None else now
    unsigned = PaymentAuthorization(
        from_address=principal,
        to=payee,
        value=value,
        valid_after=0,
        valid_before=issued_at + validity_secs,
        nonce=f"0x{secrets.token_bytes(32).hex()}",
        asset=asset,
    )
    signature = signer.sign_authorization(unsigned)
    return replace(unsigned, signature=signature)


def build_requirements(
    payee: str,
    value: int,
    asset: str,
    network: str,
    description: str,
    max_timeout_secs: int,
) -> dict[str, Any]:
    """x402 ``paymentRequirements`` matching an authorization."""
    return {
        "scheme": X402_SCHEME,
        "network": network,
        "payTo": payee,
        "asset": asset,
        "description": description,
        "mimeType": "application/json",
        "maxAmountRequired": str(value),
        "maxTimeoutSeconds": max_timeout_secs,
    }
