"""Canonical contract/wallet address form: lowercase ``0x`` + 40 hex chars."""


def canonicalize_address(addr: str) -> str:
    """Normalize an EVM address to the aggregate key form.

    Raises ValueError for anything that is not a 20-byte hex address.
    """
    if not isinstance(addr, str):
        raise ValueError(f"address must be a string, got: {type(addr)}")
    addr = addr.strip().lower()
    if not addr.startswith("0x") or len(addr) != 42:
        raise ValueError(f"invalid address format: {addr}")
    int(addr[2:], 16)
    return addr


def short_address(addr: str) -> str:
    """0x1234…abcd form for log lines."""
    return f"{addr[:6]}…{addr[-4:]}" if len(addr) > 12 else addr
