"""Data describing a provider upgrade plan."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class ProviderSourceType(Enum):
    """Where a provider's manifests are fetched from."""

    BUILTIN = "builtin"
    CUSTOM_URL = "custom-url"
    CONFIG_MAP = "config-map"


@dataclass
class UpgradeItem:
    """A possible upgrade target for one provider in the management cluster."""

    name: str
    namespace: str
    type: str
    source: str = ""
    source_type: ProviderSourceType | None = None
    current_version: str = ""
    next_version: str = ""


@dataclass
class UpgradePlan:
    """Possible upgrade targets for a management cluster."""

    contract: str
    providers: list[UpgradeItem] = field(default_factory=list)


def sort_upgrade_items(plan: UpgradePlan) -> None:
    """Sort the plan's providers in place by type, then name, then namespace."""
    plan.providers.sort(key=lambda item: (item.type, item.name, item.namespace))


def prettify_target_version(version: str) -> str:
    """Describe a target version; an empty one means there is nothing to do."""
    return version or "Already up to date"