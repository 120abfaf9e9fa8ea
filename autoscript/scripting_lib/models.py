from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from types import MappingProxyType
from typing import Any, Callable, Mapping


SITE_TITLE_PLACEHOLDER = "site_title"


def _noop() -> None:
    return None


def freeze_mapping(value: Mapping[str, Any] | None) -> Mapping[str, Any]:
    return MappingProxyType(dict(value or {}))


@dataclass(frozen=True)
class FieldDefinition:
    name: str
    component: str
    accepts_placeholders: bool = False
    triggerable: str | None = None
    required: bool = False
    extra: Mapping[str, Any] = field(default_factory=lambda: freeze_mapping(None))

    def as_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "component": self.component,
            "accepts_placeholders": self.accepts_placeholders,
            "triggerable": self.triggerable,
            "required": self.required,
            "extra": dict(self.extra),
        }


@dataclass(frozen=True)
class ForcedTriggerable:
    triggerable: str
    state: Mapping[str, Any] = field(default_factory=lambda: freeze_mapping(None))

    def as_dict(self) -> dict[str, Any]:
        return {"triggerable": self.triggerable, "state": dict(self.state)}


@dataclass(frozen=True)
class ScriptDefinition:
    name: str
    version: int = 1
    fields: tuple[FieldDefinition, ...] = ()
    placeholders: tuple[str, ...] = (SITE_TITLE_PLACEHOLDER,)
    forced_triggerable: ForcedTriggerable | None = None
    declared_triggerables: tuple[str, ...] = ()
    run: Callable[[], Any] = _noop
    on_reset: Callable[[], Any] = _noop

    @property
    def triggerables(self) -> list[str]:
        if self.forced_triggerable is not None:
            return [self.forced_triggerable.triggerable]
        return list(self.declared_triggerables)

    def accepts_trigger(self, trigger: str) -> bool:
        allowed = self.triggerables
        if not allowed:
            return True
        normalized = trigger.strip().lower()
        return any(item.strip().lower() == normalized for item in allowed)

    def fields_for(self, trigger: str | None) -> list[FieldDefinition]:
        return [
            item
            for item in self.fields
            if item.triggerable is None or item.triggerable == trigger
        ]


@dataclass(frozen=True)
class TriggerDefinition:
    name: str
    fields: tuple[FieldDefinition, ...] = ()


@dataclass(frozen=True)
class AutomationInstance:
    id: int
    script: str
    trigger: str | None = None
    trigger_state: Mapping[str, Any] = field(default_factory=lambda: freeze_mapping(None))
    fields: Mapping[str, Any] = field(default_factory=lambda: freeze_mapping(None))


@dataclass(frozen=True)
class ScriptContext:
    instance: AutomationInstance
    definition: ScriptDefinition
    trigger: str | None
    trigger_state: Mapping[str, Any]
    trigger_payload: Mapping[str, Any]
    trace_id: str = "-"

    def field_value(self, name: str, default: Any = None) -> Any:
        return self.instance.fields.get(name, default)


@dataclass(frozen=True)
class ScriptRunResult:
    script: str
    automation_id: int
    trigger: str | None
    ok: bool
    elapsed_ms: int
    error: str | None = None


@dataclass(frozen=True)
class ReportPoint:
    day: date
    count: int


@dataclass(frozen=True)
class MessagePayload:
    title: str
    body: str
    recipients: tuple[str, ...]

    @classmethod
    def build(cls, title: str, body: str, recipients) -> "MessagePayload":
        if isinstance(recipients, (str, int)):
            recipients = [recipients]
        cleaned = tuple(
            str(item).strip() for item in (recipients or ()) if str(item).strip()
        )
        return cls(title=title, body=body, recipients=cleaned)


@dataclass(frozen=True)
class DeliveryResult:
    status: str
    message_id: str | None = None
    pending_id: int | None = None

    @property
    def pending(self) -> bool:
        return self.status == "pending"
