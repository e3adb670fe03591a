from decimal import ROUND_DOWN, Decimal
from urllib.parse import quote, urlencode

from app.config import settings

LAMPORTS_PER_ELURC = 1_000_000


def lamports_to_elurc(lamports: int) -> Decimal:
    return Decimal(lamports) / Decimal(LAMPORTS_PER_ELURC)


def elurc_to_lamports(amount: Decimal | str | int) -> int:
    value = Decimal(str(amount)) * Decimal(LAMPORTS_PER_ELURC)
    return int(value.to_integral_value(rounding=ROUND_DOWN))


def format_elurc(lamports: int) -> str:
    """Two-decimal ELURC string, e.g. 2500000 -> '2.50'."""
    return format(lamports_to_elurc(lamports).quantize(Decimal("0.01")), "f")


def build_payment_uri(
    recipient: str,
    amount_lamports: int,
    spl_token: str,
    reference: str | None = None,
    label: str = "elurc-market",
    message: str = "Order payment",
) -> str:
    """Build a Solana Pay transfer request URI for an ELURC payment."""
    params: list[tuple[str, str]] = [("amount", str(amount_lamports)), ("spl-token", spl_token)]
    if reference:
        params.append(("reference", reference))
    if label:
        params.append(("label", label))
    if message:
        params.append(("message", message))
    return f"solana:{recipient}?{urlencode(params, quote_via=quote)}"


def explorer_tx_url(signature: str) -> str:
    network = settings.SOLANA_NETWORK
    cluster = "" if network == "mainnet-beta" else f"?cluster={network}"
    return f"https://explorer.solana.com/tx/{signature}{cluster}"
