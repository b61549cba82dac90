"""yieldpool - pooled multi-asset share ledger with risk-adjusted strategy allocation."""

__all__ = ["YieldPoolSettings", "YieldVault", "__version__"]
__version__ = "0.1.0"


def __getattr__(name: str):
    if name == "YieldVault":
        from .vault import YieldVault

        return YieldVault
    if name == "YieldPoolSettings":
        from .config import YieldPoolSettings

        return YieldPoolSettings
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
