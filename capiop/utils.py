"""Helpers shared by the commands: versions, deployments, namespaces, kubeconfig."""

from __future__ import annotations

import functools
import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Protocol

from .resources import ClusterClient, Deployment, NotFoundError

_VERSION_RE = re.compile(r"^v?([0-9]+(?:\.[0-9]+)*)(.*)$")
_EXTRA_RE = re.compile(
    r"^(?:-([0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*))?(?:\+([0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*))?$"
)
_NO_RELEASES = "failed to find releases tagged with a valid semantic version number"
_MAX_CANDIDATES = 3


def _compare_identifier(a: str, b: str) -> int:
    a_num, b_num = a.isdigit(), b.isdigit()
    if a_num and b_num:
        x, y = int(a), int(b)
    elif a_num != b_num:
        return -1 if a_num else 1
    else:
        x, y = a, b
    return (x > y) - (x < y)


@functools.total_ordering
@dataclass(frozen=True, eq=False)
class SemanticVersion:
    """A semantic version; build metadata does not take part in ordering."""

    major: int
    minor: int
    patch: int
    pre_release: str = ""
    build_metadata: str = ""

    def __str__(self) -> str:
        text = f"{self.major}.{self.minor}.{self.patch}"
        if self.pre_release:
            text += f"-{self.pre_release}"
        if self.build_metadata:
            text += f"+{self.build_metadata}"
        return text

    def compare(self, other: SemanticVersion) -> int:
        mine = (self.major, self.minor, self.patch)
        theirs = (other.major, other.minor, other.patch)
        if mine != theirs:
            return -1 if mine < theirs else 1
        if not self.pre_release:
            return 0 if not other.pre_release else 1
        if not other.pre_release:
            return -1
        left, right = self.pre_release.split("."), other.pre_release.split(".")
        for a, b in zip(left, right):
            result = _compare_identifier(a, b)
            if result:
                return result
        return (len(left) > len(right)) - (len(left) < len(right))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, SemanticVersion):
            return NotImplemented
        return self.compare(other) == 0

    def __lt__(self, other: SemanticVersion) -> bool:
        return self.compare(other) < 0

    def __hash__(self) -> int:
        return hash((self.major, self.minor, self.patch, self.pre_release))


def parse_semantic(version: str) -> SemanticVersion:
    """Parse a strict semantic version, optionally prefixed with 'v'."""
    match = _VERSION_RE.match(version)
    if not match:
        raise ValueError(f"could not parse {version!r} as version")
    numbers, extra = match.groups()
    components = numbers.split(".")
    if len(components) != 3:
        raise ValueError(f"illegal version string {version!r}")
    for component in components:
        if len(component) > 1 and component.startswith("0"):
            raise ValueError(f"illegal zero-prefixed version component {component!r} in {version!r}")
    extra_match = _EXTRA_RE.match(extra)
    if not extra_match:
        raise ValueError(f"illegal version string {version!r}")
    pre_release, build = extra_match.groups()
    major, minor, patch = (int(c) for c in components)
    return SemanticVersion(major, minor, patch, pre_release or "", build or "")


class Repository(Protocol):
    """A source of provider releases."""

    @property
    def components_path(self) -> str: ...

    def get_versions(self) -> list[str]: ...

    def get_file(self, version: str, path: str) -> bytes: ...


def get_deployment_by_labels(client: ClusterClient, labels: Mapping[str, str]) -> Deployment:
    """Return the single deployment carrying all the given labels."""
    deployments = client.list_deployments(labels)
    if len(deployments) > 1:
        raise ValueError(f"more than one deployment found for given labels {dict(labels)}")
    if not deployments:
        raise NotFoundError()
    return deployments[0]


def check_deployment_availability(client: ClusterClient, labels: Mapping[str, str]) -> bool:
    """Tell whether the deployment with the given labels reports itself available."""
    try:
        deployment = get_deployment_by_labels(client, labels)
    except NotFoundError:
        return False
    return any(c.type == "Available" and c.status == "True" for c in deployment.conditions)


def ensure_namespace_exists(client: ClusterClient, namespace: str) -> None:
    """Create the namespace unless it is already there."""
    try:
        client.get_namespace(namespace)
    except NotFoundError:
        client.create_namespace(namespace)


def get_kubeconfig_location(environ: Mapping[str, str] | None = None) -> str:
    """Return $KUBECONFIG if set, otherwise ~/.kube/config."""
    environ = os.environ if environ is None else environ
    kubeconfig = environ.get("KUBECONFIG", "")
    if kubeconfig:
        return kubeconfig
    return str(Path.home() / ".kube" / "config")


def _release_first(a: SemanticVersion, b: SemanticVersion) -> int:
    if a.pre_release and not b.pre_release:
        return 1
    if b.pre_release and not a.pre_release:
        return -1
    return -a.compare(b)


def get_latest_release(repo: Repository) -> str:
    """Return the newest release whose components file can be fetched."""
    try:
        versions = repo.get_versions()
    except NotFoundError:
        raise
    except Exception as exc:
        raise RuntimeError(f"failed to get repository versions: {exc}") from exc

    parsed = []
    for version in versions:
        try:
            parsed.append(parse_semantic(version))
        except ValueError:
            continue
    if not parsed:
        raise ValueError(_NO_RELEASES)

    candidates = sorted(parsed, key=functools.cmp_to_key(_release_first))[:_MAX_CANDIDATES]
    for candidate in candidates:
        version_string = f"v{candidate}"
        try:
            repo.get_file(version_string, repo.components_path)
        except NotFoundError:
            continue
        return version_string
    raise ValueError(_NO_RELEASES)