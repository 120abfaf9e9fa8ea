"""Script and trigger definitions, placeholder templating and message dispatch."""

from autoscript.scripting_lib.dispatch import Dispatcher
from autoscript.scripting_lib.errors import (
    DuplicateField,
    InvalidPayload,
    NotFound,
    ReportUnavailable,
)
from autoscript.scripting_lib.models import (
    AutomationInstance,
    DeliveryResult,
    FieldDefinition,
    ForcedTriggerable,
    MessagePayload,
    ScriptDefinition,
    TriggerDefinition,
)
from autoscript.scripting_lib.placeholders import PlaceholderEngine
from autoscript.scripting_lib.registry import ScriptRegistry, TriggerRegistry
from autoscript.scripting_lib.reports import ReportBridge
from autoscript.scripting_lib.runner import ScriptRunner, current_context

__all__ = [
    "AutomationInstance",
    "DeliveryResult",
    "Dispatcher",
    "DuplicateField",
    "FieldDefinition",
    "ForcedTriggerable",
    "InvalidPayload",
    "MessagePayload",
    "NotFound",
    "PlaceholderEngine",
    "ReportBridge",
    "ReportUnavailable",
    "ScriptDefinition",
    "ScriptRegistry",
    "ScriptRunner",
    "TriggerDefinition",
    "TriggerRegistry",
    "current_context",
]
