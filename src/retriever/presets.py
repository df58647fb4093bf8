"""
Base derivation paths used by well-known wallets.

Data from https://walletsrecovery.org. Wallets using non-BIP39 seeds (aezeed,
Opendime) are not listed.
"""

from __future__ import annotations

BIP44 = "m/44'/0'/0'"
BIP49 = "m/49'/0'/0'"
BIP84 = "m/84'/0'/0'"
BIP86 = "m/86'/0'/0'"
BIP48_P2WSH = "m/48'/0'/0'/2'"

WALLET_BASE_PATHS: dict[str, tuple[str, ...]] = {
    # Hardware wallets
    "airgap-vault": (BIP44, BIP84),
    "arculus": ("m/0'",),
    "bitbox01": (BIP44, BIP49, BIP84),
    "bitbox02": ("m/48'/0'/0'", BIP49, BIP84),
    "cobo-vault": (BIP49,),
    "coldcard": (BIP44, "m/48'/0'/0'", BIP49, BIP84),
    "coolwallet-s": (BIP44,),
    "jade": (BIP49, BIP84),
    "keepkey": (BIP44,),
    "krux": (BIP48_P2WSH, BIP84),
    "ledger-nano": (BIP49, BIP84),
    "passport": (BIP48_P2WSH, BIP84, "m/84'/0'/2147483646'"),
    "prokey-optimum": (BIP44, BIP49, BIP84),
    "seedsigner": (BIP48_P2WSH, BIP84),
    "trezor": (BIP44, BIP49, BIP84),
    # Software wallets
    "atomic": ("m/44'/0'/0'/0/0",),
    "bisq": (BIP44, "m/44'/0'/1'"),
    "bitcoin-core": ("m/0'/0'",),
    "bither": (BIP44, BIP49),
    "blockchain-com": ("m/44'/0'",),
    "blockstream-green": (BIP44, BIP49, BIP84),
    "bluewallet": (BIP44, BIP49, BIP84),
    "breadwallet": ("m/0'",),
    "casa": ("m/49/0",),
    "coinomi": (BIP44, BIP49, BIP84),
    "copay": ("m/44'/0'",),
    "edge": (BIP44, BIP49),
    "electrum": (BIP44, BIP49, BIP84),
    "exodus": (BIP44, BIP84),
    "fully-noded": (BIP84,),
    "hodl": ("m/0'",),
    "jaxx-liberty": (BIP44,),
    "joinmarket": ("m/84'/0'",),
    "joinmarket-legacy": ("m/0",),
    "ledger-live": (BIP44, BIP49),
    "multibit-hd": ("m/0'",),
    "mycelium": ("m/44'/0'", "m/49'/0'", "m/84'/0'"),
    "relai": (BIP44, "m/49'/0'/0'/0/0", "m/84'/0'/0'/0/0"),
    "samourai": (
        BIP44,
        "m/47'/0'/0'",
        BIP49,
        BIP84,
        "m/84'/0'/2147483644'",
        "m/84'/0'/2147483645'",
        "m/84'/0'/2147483646'",
        "m/44'/0'/2147483647'",
        "m/49'/0'/2147483647'",
        "m/84'/0'/2147483647'",
    ),
    "sparrow": (BIP44, BIP49, BIP84, BIP86),
    "specter-desktop": (BIP49, BIP84),
    "trust-wallet": ("m/84'/0'/0'/0/0",),
    "unstoppable": (BIP44, BIP49, BIP84),
    "wasabi": (BIP84, BIP86),
    # Lightning wallets
    "c-lightning": (BIP84, "m/141'/0'/0'"),
    "eclair-mobile": (BIP49,),
    "mutiny": (BIP86,),
    "zeus": (BIP86,),
}


def wallet_names() -> list[str]:
    return sorted(WALLET_BASE_PATHS)


def base_paths_for(wallet: str) -> tuple[str, ...]:
    """
    Base paths used by a wallet, or by every known wallet for "all".

    Raises:
        ValueError: If the wallet is unknown
    """
    name = wallet.strip().lower()
    if name == "all":
        return all_base_paths()
    try:
        return WALLET_BASE_PATHS[name]
    except KeyError:
        raise ValueError(f"Unknown wallet preset '{wallet}'") from None


def all_base_paths() -> tuple[str, ...]:
    """Every distinct preset base path, in first-seen order."""
    seen: dict[str, None] = {}
    for paths in WALLET_BASE_PATHS.values():
        for path in paths:
            seen.setdefault(path)
    return tuple(seen)
