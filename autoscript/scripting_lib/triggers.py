from __future__ import annotations

from autoscript.scripting_lib.registry import TriggerBuilder, TriggerRegistry


RECURRING = "recurring"
POINT_IN_TIME = "point_in_time"
API_CALL = "api_call"


def _recurring(t: TriggerBuilder) -> None:
    t.field("recurrence", component="period", required=True)
    t.field("start_date", component="date_time", required=True)


def _point_in_time(t: TriggerBuilder) -> None:
    t.field("execute_at", component="date_time", required=True)


def register_builtin_triggers(registry: TriggerRegistry) -> TriggerRegistry:
    registry.add(RECURRING, _recurring)
    registry.add(POINT_IN_TIME, _point_in_time)
    registry.add(API_CALL, lambda t: None)
    return registry
