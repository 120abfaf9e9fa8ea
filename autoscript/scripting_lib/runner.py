from __future__ import annotations

from contextvars import ContextVar
import inspect
import logging
from time import perf_counter
from typing import Any, Iterable, Mapping
import uuid

from autoscript.scripting_lib.errors import NotFound
from autoscript.scripting_lib.models import (
    AutomationInstance,
    ScriptContext,
    ScriptDefinition,
    ScriptRunResult,
    freeze_mapping,
)
from autoscript.scripting_lib.registry import ScriptRegistry, TriggerRegistry


logger = logging.getLogger(__name__)

_current_context: ContextVar[ScriptContext | None] = ContextVar(
    "autoscript_current_context", default=None
)


def current_context() -> ScriptContext:
    """Context of the hook being executed; hooks take no arguments."""
    context = _current_context.get()
    if context is None:
        raise RuntimeError("no script hook is running")
    return context


def effective_trigger(
    instance: AutomationInstance, definition: ScriptDefinition
) -> tuple[str | None, Mapping[str, Any]]:
    forced = definition.forced_triggerable
    if forced is not None:
        return forced.triggerable, forced.state
    return instance.trigger, instance.trigger_state


class ScriptRunner:
    def __init__(self, scripts: ScriptRegistry, triggers: TriggerRegistry) -> None:
        self._scripts = scripts
        self._triggers = triggers

    async def fire(
        self,
        trigger: str,
        instances: Iterable[AutomationInstance],
        trigger_payload: Mapping[str, Any] | None = None,
        trace_id: str | None = None,
    ) -> list[ScriptRunResult]:
        definition = self._triggers.get(trigger)
        normalized = definition.name.strip().lower()
        trace_id = trace_id or uuid.uuid4().hex[:12]
        logger.info(
            "trigger fired",
            extra={"event": "trigger_start", "trace_id": trace_id, "trigger": trigger},
        )
        results: list[ScriptRunResult] = []
        for instance in instances:
            try:
                script = self._scripts.get(instance.script)
            except NotFound as exc:
                if (instance.trigger or "").strip().lower() != normalized:
                    continue
                logger.error(
                    "script missing for automation",
                    extra={
                        "event": "script_missing",
                        "trace_id": trace_id,
                        "trigger": trigger,
                        "script": instance.script,
                        "automation_id": instance.id,
                        "status": "error",
                    },
                )
                results.append(
                    ScriptRunResult(
                        script=instance.script,
                        automation_id=instance.id,
                        trigger=definition.name,
                        ok=False,
                        elapsed_ms=0,
                        error=str(exc),
                    )
                )
                continue
            bound, _ = effective_trigger(instance, script)
            if bound is None or bound.strip().lower() != normalized:
                continue
            if not script.accepts_trigger(definition.name):
                logger.warning(
                    "script does not accept trigger",
                    extra={
                        "event": "trigger_incompatible",
                        "trace_id": trace_id,
                        "trigger": trigger,
                        "script": script.name,
                        "automation_id": instance.id,
                    },
                )
                continue
            results.append(
                await self._execute(
                    "run", instance, script, trigger_payload, trace_id
                )
            )
        logger.info(
            "trigger finished",
            extra={
                "event": "trigger_end",
                "trace_id": trace_id,
                "trigger": trigger,
                "status": "ok",
                "result_count": len(results),
            },
        )
        return results

    async def run(
        self,
        instance: AutomationInstance,
        trigger_payload: Mapping[str, Any] | None = None,
        trace_id: str | None = None,
    ) -> ScriptRunResult:
        script = self._scripts.get(instance.script)
        return await self._execute(
            "run", instance, script, trigger_payload, trace_id or uuid.uuid4().hex[:12]
        )

    async def reset(
        self, instance: AutomationInstance, trace_id: str | None = None
    ) -> ScriptRunResult:
        script = self._scripts.get(instance.script)
        return await self._execute(
            "on_reset", instance, script, None, trace_id or uuid.uuid4().hex[:12]
        )

    async def _execute(
        self,
        hook_name: str,
        instance: AutomationInstance,
        script: ScriptDefinition,
        trigger_payload: Mapping[str, Any] | None,
        trace_id: str,
    ) -> ScriptRunResult:
        trigger, trigger_state = effective_trigger(instance, script)
        context = ScriptContext(
            instance=instance,
            definition=script,
            trigger=trigger,
            trigger_state=trigger_state,
            trigger_payload=freeze_mapping(trigger_payload),
            trace_id=trace_id,
        )
        hook = getattr(script, hook_name)
        log_extra = {
            "trace_id": trace_id,
            "trigger": trigger,
            "script": script.name,
            "automation_id": instance.id,
        }
        token = _current_context.set(context)
        start = perf_counter()
        try:
            outcome = hook()
            if inspect.isawaitable(outcome):
                await outcome
        except Exception as exc:
            elapsed_ms = int((perf_counter() - start) * 1000)
            logger.exception(
                "script hook failed",
                extra={**log_extra, "event": f"script_{hook_name}_error", "status": "error"},
            )
            return ScriptRunResult(
                script=script.name,
                automation_id=instance.id,
                trigger=trigger,
                ok=False,
                elapsed_ms=elapsed_ms,
                error=str(exc) or exc.__class__.__name__,
            )
        finally:
            _current_context.reset(token)
        elapsed_ms = int((perf_counter() - start) * 1000)
        logger.info(
            "script hook finished",
            extra={
                **log_extra,
                "event": f"script_{hook_name}_ok",
                "status": "ok",
                "latency_ms": elapsed_ms,
            },
        )
        return ScriptRunResult(
            script=script.name,
            automation_id=instance.id,
            trigger=trigger,
            ok=True,
            elapsed_ms=elapsed_ms,
        )
