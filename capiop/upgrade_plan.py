"""Planning of upgrades for the operator and the providers it manages."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Mapping

from .resources import ClusterClient, Deployment, Provider, ProviderType
from .upgrade import (
    ProviderSourceType,
    UpgradeItem,
    UpgradePlan,
    prettify_target_version,
    sort_upgrade_items,
)
from .utils import Repository, get_deployment_by_labels, get_latest_release

CAPI_OPERATOR_PROVIDER_NAME = "capi-operator"
CAPI_OPERATOR_LABELS = {
    "clusterctl.cluster.x-k8s.io/core": "capi-operator",
    "control-plane": "controller-manager",
}
PROVIDER_NAME_LABEL = "cluster.x-k8s.io/provider"
DEFAULT_CONTRACT = "v1beta1"

_MANAGER_CONTAINER = "manager"

# Order in which installed providers are listed, with the words used in errors.
_PROVIDER_ORDER: tuple[tuple[ProviderType, str], ...] = (
    (ProviderType.CORE, "core"),
    (ProviderType.BOOTSTRAP, "bootstrap"),
    (ProviderType.CONTROL_PLANE, "control plane"),
    (ProviderType.INFRASTRUCTURE, "infrastructure"),
    (ProviderType.ADDON, "addon"),
    (ProviderType.IPAM, "ipam"),
    (ProviderType.RUNTIME_EXTENSION, "runtime extension"),
)

_TABLE_MIN_WIDTH = 10
_TABLE_PADDING = 3

RepositoryFactory = Callable[[str], Repository]
ProviderUrls = Mapping[tuple[str, ProviderType], str]


@dataclass
class CertManagerUpgradePlan:
    """Whether cert-manager needs to move to another version."""

    externally_managed: bool = False
    from_version: str = ""
    to_version: str = ""
    should_upgrade: bool = False


@dataclass
class CapiOperatorUpgradePlan:
    """Whether the operator itself needs to move to another version."""

    externally_managed: bool = False
    from_version: str = ""
    to_version: str = ""
    should_upgrade: bool = False


def is_capi_operator_externally_managed(deployment: Deployment) -> bool:
    """True if the operator deployment is not managed by this tool."""
    return deployment.labels.get(PROVIDER_NAME_LABEL) != CAPI_OPERATOR_PROVIDER_NAME


def plan_capi_operator_upgrade(
    client: ClusterClient, repository_factory: RepositoryFactory
) -> CapiOperatorUpgradePlan:
    """Compare the installed operator version with the latest release.

    The factory is given the operator's provider name and returns the
    repository holding the operator's releases.
    """
    plan = CapiOperatorUpgradePlan()
    try:
        deployment = get_deployment_by_labels(client, CAPI_OPERATOR_LABELS)
    except Exception as exc:
        raise RuntimeError(f"cannot get CAPI operator deployment: {exc}") from exc

    image = deployment.containers.get(_MANAGER_CONTAINER)
    if image is not None:
        plan.from_version = image.split(":")[-1]

    try:
        repo = repository_factory(CAPI_OPERATOR_PROVIDER_NAME)
    except Exception as exc:
        raise RuntimeError(f"cannot create repository: {exc}") from exc

    try:
        latest = get_latest_release(repo)
    except Exception as exc:
        raise RuntimeError(f"cannot get latest release: {exc}") from exc

    plan.to_version = latest
    plan.should_upgrade = plan.from_version != plan.to_version
    plan.externally_managed = is_capi_operator_externally_managed(deployment)
    return plan


def get_installed_providers(client: ClusterClient) -> tuple[list[Provider], str]:
    """Return every installed provider and the contract of the core provider."""
    providers: list[Provider] = []
    contract = DEFAULT_CONTRACT
    for provider_type, label in _PROVIDER_ORDER:
        try:
            found = client.list_providers(provider_type)
        except Exception as exc:
            raise RuntimeError(
                f"cannot get a list of {label} providers from the server: {exc}"
            ) from exc
        if provider_type is ProviderType.CORE and len(found) == 1 and found[0].contract is not None:
            contract = found[0].contract
        providers.extend(found)
    return providers, contract


def get_provider_fetch_config(
    provider: Provider, provider_urls: ProviderUrls | None
) -> tuple[str, ProviderSourceType]:
    """Tell where the provider's manifests come from.

    A URL set on the provider wins; otherwise the built-in configuration is
    consulted, and a provider it does not know is taken to come from a config map.
    """
    if provider.fetch_url:
        return provider.fetch_url, ProviderSourceType.CUSTOM_URL
    url = (provider_urls or {}).get((provider.name, provider.type))
    if url is None:
        return "", ProviderSourceType.CONFIG_MAP
    return url, ProviderSourceType.BUILTIN


def plan_upgrade(
    client: ClusterClient,
    repository_factory: RepositoryFactory,
    provider_urls: ProviderUrls | None,
) -> UpgradePlan:
    """Build the upgrade plan for all installed providers.

    The factory is given a provider's manifest URL and returns a repository
    whose ``default_version`` is the version to upgrade to.
    """
    try:
        providers, contract = get_installed_providers(client)
    except Exception as exc:
        raise RuntimeError(f"cannot get installed providers: {exc}") from exc

    items: list[UpgradeItem] = []
    for provider in providers:
        source, source_type = get_provider_fetch_config(provider, provider_urls)
        if source_type is ProviderSourceType.CONFIG_MAP:
            continue
        try:
            repo = repository_factory(source)
        except Exception as exc:
            raise RuntimeError(f"cannot create repository: {exc}") from exc
        items.append(
            UpgradeItem(
                name=provider.name,
                namespace=provider.namespace,
                type=provider.type.value,
                source=source,
                source_type=source_type,
                current_version=provider.version,
                next_version=repo.default_version,
            )
        )
    return UpgradePlan(contract=contract, providers=items)


def _render_table(rows: list[list[str]]) -> str:
    """Align columns: each cell but the last is padded to its column's width."""
    columns = max(len(row) for row in rows) - 1
    widths = []
    for column in range(columns):
        longest = max(len(row[column]) for row in rows if len(row) > column + 1)
        widths.append(max(longest + _TABLE_PADDING, _TABLE_MIN_WIDTH))
    lines = []
    for row in rows:
        cells = [cell.ljust(width) for cell, width in zip(row[:-1], widths)]
        lines.append("".join(cells) + row[-1])
    return "".join(line + "\n" for line in lines)


def format_upgrade_plan(plan: UpgradePlan, supported_contract: str = DEFAULT_CONTRACT) -> str:
    """Render the plan as the text shown to the user; sorts the plan in place."""
    if not plan.providers:
        return (
            "There are no providers in the cluster. Please use capioperator init "
            "to initialize a Cluster API management cluster.\n"
        )

    sort_upgrade_items(plan)

    rows = [["NAME", "NAMESPACE", "TYPE", "CURRENT VERSION", "NEXT VERSION"]]
    rows.extend(
        [
            item.name,
            item.namespace,
            item.type,
            item.current_version,
            prettify_target_version(item.next_version),
        ]
        for item in plan.providers
    )
    upgrade_available = any(item.next_version for item in plan.providers)

    parts = [
        f"\nLatest release available for the {plan.contract} API Version of Cluster API (contract):\n\n",
        _render_table(rows),
        "\n",
    ]
    if upgrade_available:
        if plan.contract == supported_contract:
            parts.append("You can now apply the upgrade by executing the following command:\n")
            parts.append("\n")
            parts.append(f"capioperator upgrade apply --contract {plan.contract}\n")
        else:
            parts.append(
                f"The current version of capioperator could not upgrade to {plan.contract} "
                f"contract (only {supported_contract} supported).\n"
            )
    else:
        parts.append("You are already up to date!\n")
    parts.append("\n")
    return "".join(parts)