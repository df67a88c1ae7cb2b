"""Deletion of providers from the management cluster."""

from __future__ import annotations

import logging
import random
import time
from dataclasses import dataclass, field

from .resources import GROUP, ClusterClient, NoKindMatchError, NotFoundError, ProviderType
from .utils import get_kubeconfig_location

log = logging.getLogger(__name__)

_NAME_FIELD = "metadata.name"
_NAMESPACE_FIELD = "metadata.namespace"

_BACKOFF_DURATION = 0.5
_BACKOFF_FACTOR = 1.5
_BACKOFF_STEPS = 10
_BACKOFF_JITTER = 0.4

_FLAGS = "--core, --bootstrap, --control-plane, --infrastructure, --ipam, --extension, --addon"


@dataclass
class DeleteOptions:
    """Options of the delete command."""

    kubeconfig: str = ""
    kubeconfig_context: str = ""
    core_provider: bool = False
    bootstrap_providers: list[str] = field(default_factory=list)
    control_plane_providers: list[str] = field(default_factory=list)
    infrastructure_providers: list[str] = field(default_factory=list)
    ipam_providers: list[str] = field(default_factory=list)
    addon_providers: list[str] = field(default_factory=list)
    runtime_extension_providers: list[str] = field(default_factory=list)
    include_namespace: bool = False
    include_crds: bool = False
    delete_all: bool = False

    @property
    def has_provider_names(self) -> bool:
        # Runtime extension providers do not count here.
        return bool(
            self.core_provider
            or self.bootstrap_providers
            or self.control_plane_providers
            or self.infrastructure_providers
            or self.ipam_providers
            or self.addon_providers
        )


def selector_from_provider(provider: str) -> dict[str, str]:
    """Turn "name[:namespace]" into a field selector.

    Three colon-separated parts yield an empty selector; more than three are an error.
    """
    parts = provider.split(":")
    name = namespace = ""
    if len(parts) == 1:
        name = parts[0]
    elif len(parts) == 2:
        name, namespace = parts
    elif len(parts) != 3:
        raise ValueError(f"invalid provider format: {provider}")

    selector: dict[str, str] = {}
    if name:
        selector[_NAME_FIELD] = name
    if namespace:
        selector[_NAMESPACE_FIELD] = namespace
    return selector


def _crd_name(provider_type: ProviderType) -> str:
    kind = provider_type.list_kind.lower().replace("list", "s", 1)
    return f"{kind}.{GROUP}"


def delete_providers(
    client: ClusterClient,
    provider_type: ProviderType,
    selector: dict[str, str],
    options: DeleteOptions,
) -> bool:
    """Issue deletion for the matching providers; True once none remain."""
    try:
        providers = client.list_providers(provider_type, selector)
    except (NoKindMatchError, NotFoundError):
        return True

    kind = provider_type.list_kind
    for provider in providers:
        log.info("Deleting %s %s/%s", provider.type.value, provider.name, provider.namespace)
        try:
            client.delete_all_providers(provider_type, provider.namespace)
        except Exception as exc:
            raise RuntimeError(f"unable to issue delete for {kind}: {exc}") from exc

        if options.include_namespace:
            if provider.namespace.startswith("kube-") or provider.namespace == "default":
                log.info("Skipping system namespace %s", provider.namespace)
                continue
            try:
                client.delete_namespace(provider.namespace)
            except NotFoundError:
                pass
            except Exception as exc:
                raise RuntimeError(
                    f"unable to issue delete for Namespace {provider.namespace}: {exc}"
                ) from exc

    if providers:
        log.info("%d items remaning...", len(providers))
        return False

    if options.include_crds:
        log.info("Removing CRDs")
        crd = _crd_name(provider_type)
        try:
            client.delete_crd(crd)
        except NotFoundError:
            pass
        except Exception as exc:
            raise RuntimeError(f"unable to issue delete for {crd}: {exc}") from exc

    log.info("All requested providers are deleted")
    return True


class DeleteGroup:
    """Provider types paired with the selectors of what to delete."""

    def __init__(self) -> None:
        self.selectors: list[dict[str, str]] = []
        self.providers: list[ProviderType] = []

    def delete(self, provider_type: ProviderType, *args: str) -> None:
        """Queue deletion of providers given as "name[:namespace]"."""
        for provider in args:
            try:
                selector = selector_from_provider(provider)
            except ValueError as exc:
                raise ValueError(f"invalid provider format: {exc}") from exc
            self.providers.append(provider_type)
            self.selectors.append(selector)

    def delete_all(self) -> None:
        """Queue deletion of every provider of every type."""
        for provider_type in ProviderType:
            self.providers.append(provider_type)
            self.selectors.append({})

    def execute(self, client: ClusterClient, options: DeleteOptions) -> None:
        """Delete the queued providers, retrying with exponential backoff."""
        log.info("Waiting for CAPI Operator manifests to be removed...")
        duration = _BACKOFF_DURATION
        for step in range(_BACKOFF_STEPS):
            try:
                ready = True
                for provider_type, selector in zip(self.providers, self.selectors):
                    done = delete_providers(client, provider_type, selector, options)
                    ready = ready and done
            except Exception as exc:
                raise RuntimeError(f"cannot remove provider: {exc}") from exc
            if ready:
                return
            if step == _BACKOFF_STEPS - 1:
                break
            time.sleep(duration + random.random() * _BACKOFF_JITTER * duration)
            duration *= _BACKOFF_FACTOR
        raise TimeoutError("cannot remove provider: timed out waiting for the condition")


def run_delete(options: DeleteOptions, client: ClusterClient) -> None:
    """Validate the options and delete the requested providers."""
    has_names = options.has_provider_names
    if options.delete_all and has_names:
        raise ValueError(f"The --all flag can't be used in combination with {_FLAGS}")
    if not options.delete_all and not has_names:
        raise ValueError(
            f"At least one of {_FLAGS} should be specified or the --all flag should be set"
        )

    if not options.kubeconfig:
        options.kubeconfig = get_kubeconfig_location()

    group = DeleteGroup()
    requests = [
        (ProviderType.BOOTSTRAP, options.bootstrap_providers),
        (ProviderType.CONTROL_PLANE, options.control_plane_providers),
        (ProviderType.INFRASTRUCTURE, options.infrastructure_providers),
        (ProviderType.IPAM, options.ipam_providers),
        (ProviderType.ADDON, options.addon_providers),
        (ProviderType.RUNTIME_EXTENSION, options.runtime_extension_providers),
    ]
    if options.core_provider:
        requests.append((ProviderType.CORE, [""]))

    errors: list[str] = []
    for provider_type, names in requests:
        try:
            group.delete(provider_type, *names)
        except ValueError as exc:
            errors.append(str(exc))
    if len(errors) == 1:
        raise ValueError(errors[0])
    if errors:
        raise ValueError("[" + ", ".join(errors) + "]")

    if options.delete_all:
        group.delete_all()

    group.execute(client, options)