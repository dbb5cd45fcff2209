from typing import Any, MutableMapping, Optional, Protocol, runtime_checkable


@runtime_checkable
class SessionSlot(Protocol):
    """Per-visitor key/value access; the store behind it owns persistence."""

    def get(self, key: str, default: Optional[Any] = None) -> Any: ...

    def set(self, key: str, value: Any) -> None: ...


class MappingSessionSlot:
    """
    Adapts a mutable mapping (Starlette ``request.session``, a plain dict) to ``SessionSlot``.

    Setting ``None`` or ``""`` removes the key, so a later ``get(key, default)``
    falls back to ``default`` instead of returning the empty value.
    """

    def __init__(self, data: MutableMapping[str, Any]):
        self.data = data

    def get(self, key: str, default: Optional[Any] = None) -> Any:
        value = self.data.get(key)
        if value is None or value == "":
            return default
        return value

    def set(self, key: str, value: Any) -> None:
        if value is None or value == "":
            self.data.pop(key, None)
        else:
            self.data[key] = value

    def __repr__(self) -> str:
        return f"MappingSessionSlot(keys={sorted(self.data)})"
