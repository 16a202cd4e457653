from __future__ import annotations

from pugbot.core.protocols import EventBinderProtocol
from pugbot.upgrade.handlers.base import BaseStepHandler, StepRequest, StepResult, UnknownActionError, require
from pugbot.upgrade.rollback import UnbindEvents, UnexposeMethods


class AgentBindingHandler(BaseStepHandler):
    """``agent_binding``: wire named handlers to bus events or expose them as methods."""

    dependency_name = "agent_manager"
    dependency: EventBinderProtocol

    async def run(self, request: StepRequest) -> StepResult:
        params = request.params

        if request.target == "event_bus":
            source = str(params.get("source_agent", ""))
            events = require(params, "events")
            if request.action == "subscribe":
                bindings = []
                for entry in events:
                    self.dependency.subscribe_to_event(source, entry["event"], entry["handler"])
                    bindings.append((source, entry["event"], entry["handler"]))
                return StepResult.ok(
                    rollback=UnbindEvents(self.dependency, tuple(bindings)),
                    bindings=[{"source": s, "event": e, "handler": h} for s, e, h in bindings],
                )
            if request.action == "unsubscribe":
                for entry in events:
                    self.dependency.unsubscribe_from_event(source, entry["event"], entry["handler"])
                return StepResult.ok()
            raise UnknownActionError(request.action, request.target)

        if request.target == "api":
            methods = require(params, "methods")
            if request.action == "expose":
                names = []
                for method in methods:
                    self.dependency.expose_method(method["name"], method["handler"])
                    names.append(method["name"])
                return StepResult.ok(rollback=UnexposeMethods(self.dependency, tuple(names)), methods=names)
            if request.action == "unexpose":
                for name in methods:
                    self.dependency.unexpose_method(name)
                return StepResult.ok()
            raise UnknownActionError(request.action, request.target)

        raise ValueError(f"Unknown target: {request.target}")
