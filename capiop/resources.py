"""Cluster objects and a client interface for the management cluster."""

from __future__ import annotations

import copy
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable, Mapping

GROUP = "operator.cluster.x-k8s.io"

_NAME_FIELD = "metadata.name"
_NAMESPACE_FIELD = "metadata.namespace"

_BUILTIN_KINDS = frozenset(
    {
        ("v1", "Secret"),
        ("v1", "ConfigMap"),
        ("v1", "Service"),
        ("v1", "ServiceAccount"),
        ("v1", "Namespace"),
        ("apps/v1", "DaemonSet"),
        ("apps/v1", "Deployment"),
        ("admissionregistration.k8s.io/v1", "ValidatingWebhookConfiguration"),
        ("admissionregistration.k8s.io/v1", "MutatingWebhookConfiguration"),
        ("apiextensions.k8s.io/v1", "CustomResourceDefinition"),
        ("rbac.authorization.k8s.io/v1", "Role"),
        ("rbac.authorization.k8s.io/v1", "RoleBinding"),
        ("rbac.authorization.k8s.io/v1", "ClusterRole"),
        ("rbac.authorization.k8s.io/v1", "ClusterRoleBinding"),
    }
)


class NotFoundError(LookupError):
    """The requested resource does not exist."""

    def __init__(self, message: str = "resource was not found") -> None:
        super().__init__(message)


class NoKindMatchError(LookupError):
    """The cluster does not know the requested kind."""

    def __init__(self, group_version: str, kind: str) -> None:
        super().__init__(f"no matches for kind {kind!r} in version {group_version!r}")
        self.group_version = group_version
        self.kind = kind


class ProviderType(Enum):
    """Kinds of providers managed by the operator."""

    CORE = "core"
    BOOTSTRAP = "bootstrap"
    CONTROL_PLANE = "controlplane"
    INFRASTRUCTURE = "infrastructure"
    ADDON = "addon"
    IPAM = "ipam"
    RUNTIME_EXTENSION = "runtimeextension"

    @property
    def kind(self) -> str:
        return _KINDS[self]

    @property
    def list_kind(self) -> str:
        return f"{self.kind}List"


_KINDS = {
    ProviderType.CORE: "CoreProvider",
    ProviderType.BOOTSTRAP: "BootstrapProvider",
    ProviderType.CONTROL_PLANE: "ControlPlaneProvider",
    ProviderType.INFRASTRUCTURE: "InfrastructureProvider",
    ProviderType.ADDON: "AddonProvider",
    ProviderType.IPAM: "IPAMProvider",
    ProviderType.RUNTIME_EXTENSION: "RuntimeExtensionProvider",
}


@dataclass
class Provider:
    """A provider installed through the operator."""

    name: str
    namespace: str
    type: ProviderType
    version: str = ""
    fetch_url: str = ""
    contract: str | None = None


@dataclass
class DeploymentCondition:
    type: str
    status: str


@dataclass
class Deployment:
    """A deployment; containers map container name to image."""

    name: str
    namespace: str
    labels: dict[str, str] = field(default_factory=dict)
    containers: dict[str, str] = field(default_factory=dict)
    conditions: list[DeploymentCondition] = field(default_factory=list)


def _labels_match(obj_labels: Mapping[str, str], labels: Mapping[str, str] | None) -> bool:
    return all(obj_labels.get(key) == value for key, value in (labels or {}).items())


def _meta(obj: Mapping[str, Any]) -> Mapping[str, Any]:
    return obj.get("metadata") or {}


class ClusterClient(ABC):
    """Operations the commands need from a management cluster."""

    @abstractmethod
    def list_providers(self, provider_type: ProviderType, selector: Mapping[str, str] | None = None) -> list[Provider]: ...

    @abstractmethod
    def delete_all_providers(self, provider_type: ProviderType, namespace: str) -> int: ...

    @abstractmethod
    def get_namespace(self, name: str) -> dict[str, Any]: ...

    @abstractmethod
    def create_namespace(self, name: str) -> None: ...

    @abstractmethod
    def delete_namespace(self, name: str) -> None: ...

    @abstractmethod
    def delete_crd(self, name: str) -> None: ...

    @abstractmethod
    def list_deployments(self, labels: Mapping[str, str] | None = None) -> list[Deployment]: ...

    @abstractmethod
    def list_objects(
        self,
        group_version: str,
        kind: str,
        labels: Mapping[str, str] | None = None,
        namespace: str | None = None,
    ) -> list[dict[str, Any]]: ...


class InMemoryClusterClient(ClusterClient):
    """A management cluster held entirely in memory."""

    def __init__(self, known_kinds: Iterable[tuple[str, str]] = _BUILTIN_KINDS) -> None:
        self.known_kinds: set[tuple[str, str]] = set(known_kinds)
        self._providers: dict[tuple[ProviderType, str, str], Provider] = {}
        self._deployments: list[Deployment] = []
        self._objects: list[dict[str, Any]] = []

    def add_provider(self, provider: Provider) -> None:
        key = (provider.type, provider.namespace, provider.name)
        if key in self._providers:
            raise ValueError(
                f"{provider.type.kind} {provider.namespace}/{provider.name} already exists"
            )
        self._providers[key] = provider

    def add_deployment(self, deployment: Deployment) -> None:
        if any(
            d.name == deployment.name and d.namespace == deployment.namespace
            for d in self._deployments
        ):
            raise ValueError(f"deployment {deployment.namespace}/{deployment.name} already exists")
        self._deployments.append(deployment)

    def add_object(self, obj: Mapping[str, Any]) -> None:
        api_version = obj.get("apiVersion")
        kind = obj.get("kind")
        name = _meta(obj).get("name")
        if not api_version or not kind or not name:
            raise ValueError("object needs apiVersion, kind and metadata.name")
        namespace = _meta(obj).get("namespace", "")
        if any(self._identity(o) == (api_version, kind, namespace, name) for o in self._objects):
            raise ValueError(f"{kind} {namespace}/{name} already exists")
        self.known_kinds.add((api_version, kind))
        self._objects.append(copy.deepcopy(dict(obj)))

    @staticmethod
    def _identity(obj: Mapping[str, Any]) -> tuple[str, str, str, str]:
        meta = _meta(obj)
        return (obj["apiVersion"], obj["kind"], meta.get("namespace", ""), meta["name"])

    def list_providers(self, provider_type: ProviderType, selector: Mapping[str, str] | None = None) -> list[Provider]:
        selector = dict(selector or {})
        unknown = set(selector) - {_NAME_FIELD, _NAMESPACE_FIELD}
        if unknown:
            raise ValueError(f"unsupported field selector: {', '.join(sorted(unknown))}")
        name = selector.get(_NAME_FIELD)
        namespace = selector.get(_NAMESPACE_FIELD)
        return [
            p
            for p in self._providers.values()
            if p.type is provider_type
            and (name is None or p.name == name)
            and (namespace is None or p.namespace == namespace)
        ]

    def delete_all_providers(self, provider_type: ProviderType, namespace: str) -> int:
        doomed = [
            key for key, p in self._providers.items()
            if p.type is provider_type and p.namespace == namespace
        ]
        for key in doomed:
            del self._providers[key]
        return len(doomed)

    def _find(self, api_version: str, kind: str, name: str) -> dict[str, Any]:
        for obj in self._objects:
            if obj["apiVersion"] == api_version and obj["kind"] == kind and _meta(obj)["name"] == name:
                return obj
        raise NotFoundError(f"{kind} {name!r} not found")

    def get_namespace(self, name: str) -> dict[str, Any]:
        return copy.deepcopy(self._find("v1", "Namespace", name))

    def create_namespace(self, name: str) -> None:
        self.add_object({"apiVersion": "v1", "kind": "Namespace", "metadata": {"name": name}})

    def delete_namespace(self, name: str) -> None:
        namespace = self._find("v1", "Namespace", name)
        self._objects = [
            o for o in self._objects
            if o is not namespace and _meta(o).get("namespace", "") != name
        ]
        self._providers = {k: p for k, p in self._providers.items() if p.namespace != name}
        self._deployments = [d for d in self._deployments if d.namespace != name]

    def delete_crd(self, name: str) -> None:
        crd = self._find("apiextensions.k8s.io/v1", "CustomResourceDefinition", name)
        self._objects = [o for o in self._objects if o is not crd]

    def list_deployments(self, labels: Mapping[str, str] | None = None) -> list[Deployment]:
        return [d for d in self._deployments if _labels_match(d.labels, labels)]

    def list_objects(
        self,
        group_version: str,
        kind: str,
        labels: Mapping[str, str] | None = None,
        namespace: str | None = None,
    ) -> list[dict[str, Any]]:
        if (group_version, kind) not in self.known_kinds:
            raise NoKindMatchError(group_version, kind)
        return [
            copy.deepcopy(o)
            for o in self._objects
            if o["apiVersion"] == group_version
            and o["kind"] == kind
            and (namespace is None or _meta(o).get("namespace", "") == namespace)
            and _labels_match(_meta(o).get("labels") or {}, labels)
        ]