"""Default hook policies installed by upgrade documents."""

from pugbot.hooks.policies.base import HookContext
from pugbot.hooks.policies.expirations import ExpirationPolicy
from pugbot.hooks.policies.keep_alive import KeepAlivePolicy
from pugbot.hooks.policies.preprocess import PreprocessPolicy

__all__ = ["ExpirationPolicy", "HookContext", "KeepAlivePolicy", "PreprocessPolicy"]
