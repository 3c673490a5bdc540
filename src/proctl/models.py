"""Data models for proctl."""

from dataclasses import dataclass
from typing import Any


@dataclass(slots=True, frozen=True)
class Process:
    """Immutable snapshot of a tracked process."""

    id: int
    name: str
    memory: int  # RSS in bytes, 0 when unavailable

    def to_dict(self) -> dict[str, Any]:
        """Wire form used by the HTTP API."""
        return {"id": self.id, "name": self.name, "memory": self.memory}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Process":
        """
        Build a Process from its wire form.

        Accepts the legacy capitalised keys (Id, Name, Memory) as well.
        """
        pid = data["id"] if "id" in data else data["Id"]
        name = data["name"] if "name" in data else data["Name"]
        memory = data.get("memory", data.get("Memory")) or 0
        return cls(id=int(pid), name=str(name), memory=int(memory))
