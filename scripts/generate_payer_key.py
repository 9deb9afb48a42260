#!/usr/bin/env python3
"""Generate a throwaway EVM key for paying tool calls on testnet.

Outputs the address and the private key. Fund the address with test CRO
(gas) and USDC.e (payments) from https://faucet.cronos.org, then:

  - set PRIVATE_KEY in .env to the private key
  - optionally set DEFAULT_USER_ADDRESS to the address

Never reuse a generated key on mainnet.
"""

from __future__ import annotations

from eth_account import Account


def main() -> None:
    account = Account.create()
    private_key = account.key.hex()
    if not private_key.startswith("0x"):
        private_key = f"0x{private_key}"

    print("=== Payer key (testnet) ===")
    print()
    print("address (share freely, fund from the faucet):")
    print(f"  {account.address}")
    print()
    print("private key (back up securely, never commit to git):")
    print(f"  {private_key}")
    print()
    print("--- Environment variable usage (.env) ---")
    print()
    print(f"  PRIVATE_KEY={private_key}")
    print(f"  DEFAULT_USER_ADDRESS={account.address}")


if __name__ == "__main__":
    main()
