from decimal import Decimal

from app.services.elurc import (
    LAMPORTS_PER_ELURC,
    build_payment_uri,
    elurc_to_lamports,
    explorer_tx_url,
    format_elurc,
    lamports_to_elurc,
)

SHOP_WALLET = "HN7cABqLq46Es1jh92dQQisAq662SmxELLLsHHe4YWrH"
MINT = "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v"


def test_lamport_conversions():
    assert LAMPORTS_PER_ELURC == 1_000_000
    assert lamports_to_elurc(2_500_000) == Decimal("2.5")
    assert elurc_to_lamports("2.5") == 2_500_000
    assert elurc_to_lamports(Decimal("0.0000019")) == 1


def test_format_elurc():
    assert format_elurc(2_500_000) == "2.50"
    assert format_elurc(0) == "0.00"
    assert format_elurc(-1_000_000) == "-1.00"


def test_build_payment_uri():
    uri = build_payment_uri(
        recipient=SHOP_WALLET,
        amount_lamports=2_500_000,
        spl_token=MINT,
        reference="ORD-1-AB12",
        message="Order ORD-1-AB12",
    )
    assert uri == (
        f"solana:{SHOP_WALLET}?amount=2500000&spl-token={MINT}"
        "&reference=ORD-1-AB12&label=elurc-market&message=Order%20ORD-1-AB12"
    )


def test_build_payment_uri_without_optional_parts():
    uri = build_payment_uri(SHOP_WALLET, 1, MINT, label="", message="")
    assert uri == f"solana:{SHOP_WALLET}?amount=1&spl-token={MINT}"


def test_explorer_tx_url(monkeypatch):
    monkeypatch.setenv("SOLANA_NETWORK", "devnet")
    assert explorer_tx_url("abc") == "https://explorer.solana.com/tx/abc?cluster=devnet"
    monkeypatch.setenv("SOLANA_NETWORK", "mainnet-beta")
    assert explorer_tx_url("abc") == "https://explorer.solana.com/tx/abc"
