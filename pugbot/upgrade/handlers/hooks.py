from __future__ import annotations

from typing import Any, Callable

from pugbot.hooks.contract import Hook, HookName, HookTable
from pugbot.hooks.policies import ExpirationPolicy, HookContext, KeepAlivePolicy, PreprocessPolicy
from pugbot.upgrade.handlers.base import BaseStepHandler, StepRequest, StepResult, UnknownActionError
from pugbot.upgrade.rollback import RestoreHook

HookFactory = Callable[..., Hook]

DEFAULT_POLICIES: dict[HookName, HookFactory] = {
    HookName.PREPROCESS_NOTIFICATION: PreprocessPolicy,
    HookName.CHECK_EXPIRATIONS: ExpirationPolicy,
    HookName.QUEUE_KEEP_ALIVE_PROCESSING: KeepAlivePolicy,
}


class HookStepHandler(BaseStepHandler):
    """Installs (``enable``) or removes (``disable``) one notification hook.

    ``params`` configure the policy, e.g. ``grace_seconds`` or a named custom
    ``handler`` registered with the hook context.
    """

    dependency_name = "hook table"
    dependency: HookTable

    def __init__(self, name: HookName, table: HookTable | None, ctx: HookContext, factory: HookFactory | None = None) -> None:
        super().__init__(table)
        self.name = name
        self.ctx = ctx
        self.factory = factory or DEFAULT_POLICIES[name]

    async def run(self, request: StepRequest) -> StepResult:
        action = request.action or "enable"
        if action == "enable":
            options: dict[str, Any] = dict(request.params)
            previous = self.dependency.install(self.name, self.factory(self.ctx, **options))
        elif action == "disable":
            previous = self.dependency.remove(self.name)
        else:
            raise UnknownActionError(action)
        return StepResult.ok(rollback=RestoreHook(self.dependency, self.name, previous), hook=self.name.value, action=action)
