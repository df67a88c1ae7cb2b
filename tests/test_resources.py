import pytest

from capiop.resources import (
    Deployment,
    InMemoryClusterClient,
    NoKindMatchError,
    NotFoundError,
    Provider,
    ProviderType,
)


@pytest.fixture
def client():
    c = InMemoryClusterClient()
    c.add_provider(Provider("addon", "default", ProviderType.ADDON))
    c.add_provider(Provider("other", "default", ProviderType.ADDON))
    c.add_provider(Provider("helm", "addons", ProviderType.ADDON))
    c.add_provider(Provider("cluster-api", "capi-system", ProviderType.CORE, version="v1.8.0"))
    return c


def test_list_providers_keeps_types_apart(client):
    core = client.list_providers(ProviderType.CORE)
    assert [(p.name, p.namespace, p.version) for p in core] == [
        ("cluster-api", "capi-system", "v1.8.0")
    ]
    assert client.list_providers(ProviderType.IPAM) == []


def test_list_providers_by_type(client):
    names = sorted(p.name for p in client.list_providers(ProviderType.ADDON))
    assert names == ["addon", "helm", "other"]


def test_list_providers_with_selector(client):
    found = client.list_providers(ProviderType.ADDON, {"metadata.namespace": "default"})
    assert sorted(p.name for p in found) == ["addon", "other"]
    found = client.list_providers(
        ProviderType.ADDON, {"metadata.name": "helm", "metadata.namespace": "addons"}
    )
    assert [p.name for p in found] == ["helm"]


def test_list_providers_rejects_unknown_field(client):
    with pytest.raises(ValueError):
        client.list_providers(ProviderType.ADDON, {"spec.version": "v1"})


def test_duplicate_provider_rejected(client):
    with pytest.raises(ValueError):
        client.add_provider(Provider("addon", "default", ProviderType.ADDON))


def test_delete_all_providers_in_namespace(client):
    assert client.delete_all_providers(ProviderType.ADDON, "default") == 2
    assert [p.name for p in client.list_providers(ProviderType.ADDON)] == ["helm"]
    assert len(client.list_providers(ProviderType.CORE)) == 1


def test_namespace_lifecycle(client):
    with pytest.raises(NotFoundError):
        client.get_namespace("capi-system")
    client.create_namespace("capi-system")
    assert client.get_namespace("capi-system")["metadata"]["name"] == "capi-system"
    with pytest.raises(ValueError):
        client.create_namespace("capi-system")


def test_delete_namespace_removes_contents(client):
    client.create_namespace("capi-system")
    client.add_deployment(Deployment("mgr", "capi-system"))
    client.add_object(
        {"apiVersion": "v1", "kind": "Secret", "metadata": {"name": "s", "namespace": "capi-system"}}
    )
    client.delete_namespace("capi-system")
    assert client.list_providers(ProviderType.CORE) == []
    assert client.list_deployments() == []
    assert client.list_objects("v1", "Secret") == []
    with pytest.raises(NotFoundError):
        client.delete_namespace("capi-system")


def test_delete_crd(client):
    crd_name = "addonproviders.operator.cluster.x-k8s.io"
    client.add_object(
        {"apiVersion": "apiextensions.k8s.io/v1", "kind": "CustomResourceDefinition", "metadata": {"name": crd_name}}
    )
    client.delete_crd(crd_name)
    assert client.list_objects("apiextensions.k8s.io/v1", "CustomResourceDefinition") == []
    with pytest.raises(NotFoundError):
        client.delete_crd(crd_name)


def test_list_objects_unknown_kind(client):
    with pytest.raises(NoKindMatchError) as info:
        client.list_objects("example.io/v1", "Widget")
    assert info.value.kind == "Widget"


def test_list_objects_filters_by_labels_and_namespace(client):
    client.add_object(
        {"apiVersion": "v1", "kind": "ConfigMap",
         "metadata": {"name": "a", "namespace": "ns1", "labels": {"app": "x"}}}
    )
    client.add_object(
        {"apiVersion": "v1", "kind": "ConfigMap",
         "metadata": {"name": "b", "namespace": "ns2", "labels": {"app": "x"}}}
    )
    client.add_object(
        {"apiVersion": "v1", "kind": "ConfigMap", "metadata": {"name": "c", "namespace": "ns1"}}
    )
    labelled = client.list_objects("v1", "ConfigMap", {"app": "x"})
    assert sorted(o["metadata"]["name"] for o in labelled) == ["a", "b"]
    in_ns1 = client.list_objects("v1", "ConfigMap", {"app": "x"}, "ns1")
    assert [o["metadata"]["name"] for o in in_ns1] == ["a"]


def test_list_deployments_by_labels(client):
    client.add_deployment(Deployment("a", "ns", labels={"k": "v", "x": "y"}))
    client.add_deployment(Deployment("b", "ns", labels={"k": "w"}))
    assert [d.name for d in client.list_deployments({"k": "v"})] == ["a"]
    assert len(client.list_deployments()) == 2