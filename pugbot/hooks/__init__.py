"""Integration hooks that adjust notification behavior at runtime."""

from pugbot.hooks.contract import (
    ExpirationRequest,
    ExpirationResult,
    HookName,
    HookTable,
    KeepAliveRequest,
    KeepAliveResult,
    PreprocessRequest,
    PreprocessResult,
)

__all__ = [
    "ExpirationRequest",
    "ExpirationResult",
    "HookName",
    "HookTable",
    "KeepAliveRequest",
    "KeepAliveResult",
    "PreprocessRequest",
    "PreprocessResult",
]
