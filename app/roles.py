from __future__ import annotations

from dataclasses import dataclass

SUPPORTED_ROLES = (
    "api",
    "worker-dispatch",
)

DISPATCH_ROLES = frozenset({"worker-dispatch"})


@dataclass(frozen=True)
class RuntimeRole:
    name: str

    @property
    def runs_dispatcher(self) -> bool:
        return self.name in DISPATCH_ROLES


def validate_role(role: str) -> RuntimeRole:
    if role in SUPPORTED_ROLES:
        return RuntimeRole(name=role)

    supported = ", ".join(SUPPORTED_ROLES)
    raise ValueError(
        f"Unsupported role '{role}'. Supported roles: {supported}. "
        "Note: the destination poller is external and not an app role."
    )
