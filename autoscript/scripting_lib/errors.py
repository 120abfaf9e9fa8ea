from __future__ import annotations


class ScriptingError(Exception):
    """Base class for errors raised by the scripting core."""


class NotFound(ScriptingError, LookupError):
    def __init__(self, kind: str, name: str) -> None:
        super().__init__(f"{kind} not registered: {name}")
        self.kind = kind
        self.name = name


class DuplicateField(ScriptingError, ValueError):
    def __init__(self, owner: str, field_name: str) -> None:
        super().__init__(f"field '{field_name}' declared twice in '{owner}'")
        self.owner = owner
        self.field_name = field_name


class InvalidPayload(ScriptingError, ValueError):
    pass


class ReportUnavailable(ScriptingError):
    """Raised by report engines; never escapes the report bridge."""
