import logging
import re

import httpx

from app.config import settings
from app.services.exceptions import WalletServiceError

logger = logging.getLogger(__name__)

# Base58 public keys are 32 bytes, which encode to 32-44 characters.
_WALLET_ADDRESS_RE = re.compile(r"^[1-9A-HJ-NP-Za-km-z]{32,44}$")


def is_valid_wallet_address(address: str | None) -> bool:
    if not address:
        return False
    return bool(_WALLET_ADDRESS_RE.match(address.strip()))


def _rpc_call(method: str, params: list) -> dict:
    payload = {"jsonrpc": "2.0", "id": 1, "method": method, "params": params}
    try:
        response = httpx.post(
            settings.SOLANA_RPC_URL,
            json=payload,
            timeout=settings.SOLANA_RPC_TIMEOUT_SECONDS,
        )
    except httpx.RequestError as e:
        logger.error("Solana RPC %s connection error: %s", method, e)
        raise WalletServiceError(f"Solana RPC is unavailable: {e}") from e

    if response.status_code != 200:
        logger.warning("Solana RPC %s returned HTTP %s", method, response.status_code)
        raise WalletServiceError(f"Solana RPC error: HTTP {response.status_code}")

    data = response.json()
    if data.get("error"):
        message = data["error"].get("message", "unknown error")
        logger.warning("Solana RPC %s error: %s", method, message)
        raise WalletServiceError(f"Solana RPC error: {message}")
    return data.get("result") or {}


def get_elurc_balance(wallet_address: str) -> int:
    """Return the ELURC balance of a wallet in lamports, summed over its token accounts."""
    if not settings.ELURC_TOKEN_ADDRESS:
        raise ValueError("ELURC_TOKEN_ADDRESS is not set")
    if not is_valid_wallet_address(wallet_address):
        raise WalletServiceError("Invalid wallet address format")

    result = _rpc_call(
        "getTokenAccountsByOwner",
        [
            wallet_address,
            {"mint": settings.ELURC_TOKEN_ADDRESS},
            {"encoding": "jsonParsed", "commitment": "confirmed"},
        ],
    )

    total = 0
    for account in result.get("value", []):
        try:
            token_amount = account["account"]["data"]["parsed"]["info"]["tokenAmount"]
            total += int(token_amount["amount"])
        except (KeyError, TypeError, ValueError):
            logger.warning("Skipping unparseable token account for wallet %s", wallet_address)
    return total


_SIGNATURE_RE = re.compile(r"^[1-9A-HJ-NP-Za-km-z]{64,88}$")


def is_valid_transaction_signature(signature: str | None) -> bool:
    if not signature:
        return False
    return bool(_SIGNATURE_RE.match(signature.strip()))
