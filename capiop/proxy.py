"""A read-mostly view of the management cluster used by the provider tooling."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Mapping

from .resources import ClusterClient, NoKindMatchError

log = logging.getLogger(__name__)

# (group version, kind, namespaced) of everything a provider component may own.
_COMPONENT_RESOURCES: tuple[tuple[str, str, bool], ...] = (
    ("v1", "Secret", True),
    ("v1", "ConfigMap", True),
    ("v1", "Service", True),
    ("v1", "ServiceAccount", True),
    ("v1", "Namespace", False),
    ("apps/v1", "DaemonSet", True),
    ("apps/v1", "Deployment", True),
    ("admissionregistration.k8s.io/v1", "ValidatingWebhookConfiguration", False),
    ("admissionregistration.k8s.io/v1", "MutatingWebhookConfiguration", False),
    ("apiextensions.k8s.io/v1", "CustomResourceDefinition", False),
    ("rbac.authorization.k8s.io/v1", "Role", True),
    ("rbac.authorization.k8s.io/v1", "RoleBinding", True),
    ("rbac.authorization.k8s.io/v1", "ClusterRole", False),
    ("rbac.authorization.k8s.io/v1", "ClusterRoleBinding", False),
)


def _gvk_string(group_version: str, kind: str) -> str:
    return f"{group_version}, Kind={kind}"


def _list_objects(
    client: ClusterClient,
    group_version: str,
    kind: str,
    labels: Mapping[str, str] | None = None,
    namespace: str | None = None,
) -> list[dict[str, Any]]:
    """List objects of one kind; a kind the cluster does not know yields nothing."""
    try:
        return client.list_objects(group_version, kind, labels, namespace)
    except NoKindMatchError:
        return []
    except Exception as exc:
        raise RuntimeError(
            f"failed to list objects for the {_gvk_string(group_version, kind)!r} "
            f"GroupVersionKind: {exc}"
        ) from exc


def _name_of(obj: Mapping[str, Any]) -> str:
    return (obj.get("metadata") or {}).get("name", "")


@dataclass
class ControllerProxy:
    """Access to the management cluster through an already configured client."""

    client: ClusterClient
    config: Any = None
    contexts: tuple[str, ...] = field(default_factory=tuple)

    def _require_client(self) -> ClusterClient:
        if self.client is None:
            raise ConnectionError("no client configured for the management cluster")
        return self.client

    def current_namespace(self) -> str:
        return "default"

    def validate_kubernetes_version(self) -> None:
        """Every cluster version is accepted once a client is configured."""
        self._require_client()

    def get_contexts(self, prefix: str) -> list[str]:
        """Return the known contexts beginning with prefix; none by default."""
        return [name for name in self.contexts if name.startswith(prefix)]

    def check_cluster_available(self) -> None:
        """The cluster behind a configured client is taken to be reachable."""
        self._require_client()

    def get_resource_names(
        self,
        group_version: str,
        kind: str,
        labels: Mapping[str, str] | None,
        prefix: str,
    ) -> list[str]:
        """Return the names of objects of the kind that begin with prefix."""
        objects = _list_objects(self.client, group_version, kind, labels)
        return [name for name in map(_name_of, objects) if name.startswith(prefix)]

    def list_resources(self, labels: Mapping[str, str] | None, *args: str) -> list[dict[str, Any]]:
        """List namespaced (in the given namespaces) and cluster-wide component objects matching labels."""
        found: list[dict[str, Any]] = []
        for group_version, kind, namespaced in _COMPONENT_RESOURCES:
            scopes = args if namespaced else (None,)
            for namespace in scopes:
                objects = _list_objects(self.client, group_version, kind, labels, namespace)
                log.debug("listed kind=%s count=%d", kind, len(objects))
                found.extend(objects)
        return found