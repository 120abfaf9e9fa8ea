from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Generic, Mapping, TypeVar

from autoscript.scripting_lib.errors import DuplicateField, NotFound
from autoscript.scripting_lib.models import (
    SITE_TITLE_PLACEHOLDER,
    FieldDefinition,
    ForcedTriggerable,
    ScriptDefinition,
    TriggerDefinition,
    freeze_mapping,
)


logger = logging.getLogger(__name__)

Hook = Callable[[], Any]
DefinitionT = TypeVar("DefinitionT")
BuilderT = TypeVar("BuilderT", bound="_FieldsBuilder")


def _normalize(name: object) -> str:
    return str(name).strip().lower()


class _FieldsBuilder:
    def __init__(self, owner: str) -> None:
        self._owner = owner
        self._fields: list[FieldDefinition] = []

    def field(
        self,
        name: str,
        *,
        component: str,
        accepts_placeholders: bool = False,
        triggerable: str | None = None,
        required: bool = False,
        **extra: Any,
    ) -> FieldDefinition:
        normalized = str(name or "").strip()
        if not normalized:
            raise ValueError(f"field name is required in '{self._owner}'")
        if any(item.name == normalized for item in self._fields):
            raise DuplicateField(self._owner, normalized)
        definition = FieldDefinition(
            name=normalized,
            component=component,
            accepts_placeholders=accepts_placeholders,
            triggerable=triggerable,
            required=required,
            extra=freeze_mapping(extra),
        )
        self._fields.append(definition)
        return definition


class TriggerBuilder(_FieldsBuilder):
    def build(self) -> TriggerDefinition:
        return TriggerDefinition(name=self._owner, fields=tuple(self._fields))


class ScriptBuilder(_FieldsBuilder):
    def __init__(self, owner: str) -> None:
        super().__init__(owner)
        self._version = 1
        self._placeholders: list[str] = []
        self._forced: ForcedTriggerable | None = None
        self._triggerables: list[str] = []
        self._run: Hook | None = None
        self._on_reset: Hook | None = None

    def version(self, number: int) -> None:
        self._version = int(number)

    def placeholder(self, name: str) -> None:
        self._placeholders.append(str(name).strip().lower())

    def force_triggerable(
        self, triggerable: str, state: Mapping[str, Any] | None = None
    ) -> None:
        self._forced = ForcedTriggerable(
            triggerable=str(triggerable), state=freeze_mapping(state)
        )

    def triggerables(self, *names: str) -> None:
        self._triggerables = [str(name) for name in names]

    def script(self, hook: Hook) -> Hook:
        self._run = hook
        return hook

    def on_reset(self, hook: Hook) -> Hook:
        self._on_reset = hook
        return hook

    def build(self) -> ScriptDefinition:
        values: dict[str, Any] = {}
        if self._run is not None:
            values["run"] = self._run
        if self._on_reset is not None:
            values["on_reset"] = self._on_reset
        return ScriptDefinition(
            name=self._owner,
            version=self._version,
            fields=tuple(self._fields),
            placeholders=(SITE_TITLE_PLACEHOLDER, *self._placeholders),
            forced_triggerable=self._forced,
            declared_triggerables=tuple(self._triggerables),
            **values,
        )


class _Registry(Generic[BuilderT, DefinitionT]):
    kind = "definition"

    def __init__(self) -> None:
        self._definitions: dict[str, DefinitionT] = {}
        self._write_lock = threading.Lock()

    def _new_builder(self, name: str) -> BuilderT:
        raise NotImplementedError

    def add(self, name: str, block: Callable[[BuilderT], Any] | None = None):
        """Build a definition from ``block`` and publish it under ``name``.

        Without ``block`` this returns a decorator, so declarations can read::

            @scripts.add("weekly_digest")
            def weekly_digest(s):
                s.version(2)
                s.field("body", component="message", accepts_placeholders=True)
        """
        if block is None:

            def decorator(func: Callable[[BuilderT], Any]) -> Callable[[BuilderT], Any]:
                self.add(name, func)
                return func

            return decorator

        key = _normalize(name)
        if not key:
            raise ValueError(f"{self.kind} name is required")
        builder = self._new_builder(key)
        block(builder)
        definition = builder.build()
        with self._write_lock:
            replaced = key in self._definitions
            snapshot = dict(self._definitions)
            snapshot[key] = definition
            self._definitions = snapshot
        logger.debug(
            "%s registered",
            self.kind,
            extra={
                "event": f"{self.kind}_registered",
                "source": key,
                "status": "replaced" if replaced else "new",
            },
        )
        return definition

    def all(self) -> frozenset[str]:
        return frozenset(self._definitions)

    def get(self, name: str) -> DefinitionT:
        definition = self._definitions.get(_normalize(name))
        if definition is None:
            raise NotFound(self.kind, name)
        return definition

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and _normalize(name) in self._definitions

    def __len__(self) -> int:
        return len(self._definitions)


class ScriptRegistry(_Registry[ScriptBuilder, ScriptDefinition]):
    kind = "script"

    def _new_builder(self, name: str) -> ScriptBuilder:
        return ScriptBuilder(name)


class TriggerRegistry(_Registry[TriggerBuilder, TriggerDefinition]):
    kind = "trigger"

    def _new_builder(self, name: str) -> TriggerBuilder:
        return TriggerBuilder(name)
