import pytest

from capiop.resources import (
    Deployment,
    InMemoryClusterClient,
    NotFoundError,
    Provider,
    ProviderType,
)
from capiop.upgrade import ProviderSourceType, UpgradeItem, UpgradePlan
from capiop.upgrade_plan import (
    CapiOperatorUpgradePlan,
    CertManagerUpgradePlan,
    format_upgrade_plan,
    get_installed_providers,
    get_provider_fetch_config,
    is_capi_operator_externally_managed,
    plan_capi_operator_upgrade,
    plan_upgrade,
)

CORE_URL = "https://example.com/releases/latest/core-components.yaml"
OPERATOR_LABELS = {
    "clusterctl.cluster.x-k8s.io/core": "capi-operator",
    "control-plane": "controller-manager",
}


class FakeRepository:
    def __init__(self, versions=(), default_version="", missing=()):
        self.versions = list(versions)
        self.default_version = default_version
        self.missing = set(missing)
        self.components_path = "operator-components.yaml"
        self.fetched = []

    def get_versions(self):
        return list(self.versions)

    def get_file(self, version, path):
        self.fetched.append((version, path))
        if version in self.missing:
            raise NotFoundError("404 Not Found")
        return b"kind: List"


class FailingClient(InMemoryClusterClient):
    def __init__(self, failing_type):
        super().__init__()
        self.failing_type = failing_type

    def list_providers(self, provider_type, selector=None):
        if provider_type is self.failing_type:
            raise ConnectionError("boom")
        return super().list_providers(provider_type, selector)


def _factory(default_version=""):
    calls = []

    def factory(source):
        calls.append(source)
        return FakeRepository(default_version=default_version)

    return factory, calls


def test_plan_no_providers():
    factory, calls = _factory()
    plan = plan_upgrade(InMemoryClusterClient(), factory, {})
    assert plan == UpgradePlan(contract="v1beta1", providers=[])
    assert calls == []


def test_plan_builtin_core_provider():
    client = InMemoryClusterClient()
    client.add_provider(Provider("cluster-api", "capi-system", ProviderType.CORE, version="v1.8.0"))
    factory, calls = _factory()
    plan = plan_upgrade(client, factory, {("cluster-api", ProviderType.CORE): CORE_URL})
    assert plan.contract == "v1beta1"
    assert plan.providers == [
        UpgradeItem(
            name="cluster-api",
            namespace="capi-system",
            type="core",
            current_version="v1.8.0",
            source=CORE_URL,
            source_type=ProviderSourceType.BUILTIN,
        )
    ]
    assert calls == [CORE_URL]


def test_plan_custom_infra_provider():
    client = InMemoryClusterClient()
    client.add_provider(
        Provider(
            "docker",
            "capi-system",
            ProviderType.INFRASTRUCTURE,
            version="v1.8.0",
            fetch_url=CORE_URL,
        )
    )
    factory, _ = _factory(default_version="v1.9.0")
    plan = plan_upgrade(client, factory, {})
    assert len(plan.providers) == 1
    item = plan.providers[0]
    assert (item.name, item.namespace, item.type) == ("docker", "capi-system", "infrastructure")
    assert item.current_version == "v1.8.0"
    assert item.next_version == "v1.9.0"
    assert item.source == CORE_URL
    assert item.source_type is ProviderSourceType.CUSTOM_URL


def test_plan_skips_config_map_providers():
    client = InMemoryClusterClient()
    client.add_provider(Provider("mine", "ns", ProviderType.ADDON, version="v0.1.0"))
    factory, calls = _factory()
    plan = plan_upgrade(client, factory, {})
    assert plan.providers == []
    assert calls == []


def test_plan_uses_core_contract():
    client = InMemoryClusterClient()
    client.add_provider(
        Provider("cluster-api", "capi-system", ProviderType.CORE, version="v1.8.0", contract="v1alpha4")
    )
    factory, _ = _factory()
    plan = plan_upgrade(client, factory, {("cluster-api", ProviderType.CORE): CORE_URL})
    assert plan.contract == "v1alpha4"


def test_plan_repository_error_is_wrapped():
    client = InMemoryClusterClient()
    client.add_provider(Provider("x", "ns", ProviderType.CORE, fetch_url=CORE_URL))

    def factory(source):
        raise OSError("unreachable")

    with pytest.raises(RuntimeError, match="cannot create repository: unreachable"):
        plan_upgrade(client, factory, {})


def test_plan_list_error_is_wrapped():
    factory, _ = _factory()
    with pytest.raises(RuntimeError, match="cannot get installed providers"):
        plan_upgrade(FailingClient(ProviderType.IPAM), factory, {})


def test_get_installed_providers_order():
    client = InMemoryClusterClient()
    client.add_provider(Provider("ext", "a", ProviderType.RUNTIME_EXTENSION))
    client.add_provider(Provider("aws", "b", ProviderType.INFRASTRUCTURE))
    client.add_provider(Provider("kubeadm", "c", ProviderType.BOOTSTRAP))
    client.add_provider(Provider("cluster-api", "d", ProviderType.CORE))
    providers, contract = get_installed_providers(client)
    assert [p.name for p in providers] == ["cluster-api", "kubeadm", "aws", "ext"]
    assert contract == "v1beta1"


def test_get_installed_providers_ignores_contract_with_two_cores():
    client = InMemoryClusterClient()
    client.add_provider(Provider("a", "ns1", ProviderType.CORE, contract="v1alpha3"))
    client.add_provider(Provider("b", "ns2", ProviderType.CORE, contract="v1alpha3"))
    _, contract = get_installed_providers(client)
    assert contract == "v1beta1"


def test_get_installed_providers_error_message():
    with pytest.raises(RuntimeError, match="cannot get a list of bootstrap providers from the server: boom"):
        get_installed_providers(FailingClient(ProviderType.BOOTSTRAP))


def test_get_provider_fetch_config():
    custom = Provider("x", "ns", ProviderType.CORE, fetch_url=CORE_URL)
    assert get_provider_fetch_config(custom, {}) == (CORE_URL, ProviderSourceType.CUSTOM_URL)
    builtin = Provider("cluster-api", "ns", ProviderType.CORE)
    urls = {("cluster-api", ProviderType.CORE): CORE_URL}
    assert get_provider_fetch_config(builtin, urls) == (CORE_URL, ProviderSourceType.BUILTIN)
    wrong_type = Provider("cluster-api", "ns", ProviderType.BOOTSTRAP)
    assert get_provider_fetch_config(wrong_type, urls) == ("", ProviderSourceType.CONFIG_MAP)
    assert get_provider_fetch_config(builtin, None) == ("", ProviderSourceType.CONFIG_MAP)


def test_externally_managed():
    managed = Deployment("op", "ns", labels={"cluster.x-k8s.io/provider": "capi-operator"})
    foreign = Deployment("op", "ns", labels={"cluster.x-k8s.io/provider": "other"})
    assert is_capi_operator_externally_managed(managed) is False
    assert is_capi_operator_externally_managed(foreign) is True
    assert is_capi_operator_externally_managed(Deployment("op", "ns")) is True


def _operator_client(image, extra_labels=None):
    client = InMemoryClusterClient()
    labels = dict(OPERATOR_LABELS)
    labels.update(extra_labels or {})
    client.add_deployment(
        Deployment("capi-operator", "capi-operator-system", labels=labels, containers={"manager": image})
    )
    return client


def test_plan_capi_operator_upgrade_available():
    client = _operator_client(
        "registry.example.com/capi-operator/cluster-api-operator:v0.1.0",
        {"cluster.x-k8s.io/provider": "capi-operator"},
    )
    repo = FakeRepository(versions=["v0.1.0", "v0.2.0", "not-a-version"])
    sources = []

    def factory(source):
        sources.append(source)
        return repo

    plan = plan_capi_operator_upgrade(client, factory)
    assert plan == CapiOperatorUpgradePlan(
        externally_managed=False, from_version="v0.1.0", to_version="v0.2.0", should_upgrade=True
    )
    assert sources == ["capi-operator"]


def test_plan_capi_operator_up_to_date_and_external():
    client = _operator_client("registry.example.com/op:v0.2.0")
    repo = FakeRepository(versions=["v0.2.0", "v0.3.0"], missing={"v0.3.0"})
    plan = plan_capi_operator_upgrade(client, lambda source: repo)
    assert plan.from_version == "v0.2.0"
    assert plan.to_version == "v0.2.0"
    assert plan.should_upgrade is False
    assert plan.externally_managed is True


def test_plan_capi_operator_missing_deployment():
    with pytest.raises(RuntimeError, match="cannot get CAPI operator deployment"):
        plan_capi_operator_upgrade(InMemoryClusterClient(), lambda source: FakeRepository())


def test_plan_capi_operator_no_releases():
    client = _operator_client("registry.example.com/op:v0.2.0")
    with pytest.raises(RuntimeError, match="cannot get latest release"):
        plan_capi_operator_upgrade(client, lambda source: FakeRepository(versions=["bogus"]))


def test_cert_manager_plan_defaults():
    plan = CertManagerUpgradePlan()
    assert (plan.externally_managed, plan.from_version, plan.to_version, plan.should_upgrade) == (
        False,
        "",
        "",
        False,
    )


def test_format_upgrade_available():
    plan = UpgradePlan(
        contract="v1beta1",
        providers=[
            UpgradeItem("cluster-api", "capi-system", "core", current_version="v1.8.0", next_version="v1.9.0")
        ],
    )
    expected = (
        "\nLatest release available for the v1beta1 API Version of Cluster API (contract):\n\n"
        "NAME          NAMESPACE     TYPE      CURRENT VERSION   NEXT VERSION\n"
        "cluster-api   capi-system   core      v1.8.0            v1.9.0\n"
        "\n"
        "You can now apply the upgrade by executing the following command:\n"
        "\n"
        "capioperator upgrade apply --contract v1beta1\n"
        "\n"
    )
    assert format_upgrade_plan(plan) == expected


def test_format_up_to_date_and_sorted():
    plan = UpgradePlan(
        contract="v1beta1",
        providers=[
            UpgradeItem("b", "ns", "infrastructure", current_version="v1"),
            UpgradeItem("a", "ns", "core", current_version="v1"),
        ],
    )
    text = format_upgrade_plan(plan)
    assert [item.name for item in plan.providers] == ["a", "b"]
    assert text.index("Already up to date") > 0
    assert text.index("\na ") < text.index("\nb ")
    assert text.endswith("You are already up to date!\n\n")


def test_format_unsupported_contract():
    plan = UpgradePlan(
        contract="v1alpha4",
        providers=[UpgradeItem("a", "ns", "core", current_version="v1", next_version="v2")],
    )
    text = format_upgrade_plan(plan, "v1beta1")
    assert (
        "The current version of capioperator could not upgrade to v1alpha4 contract "
        "(only v1beta1 supported).\n" in text
    )


def test_format_no_providers():
    text = format_upgrade_plan(UpgradePlan(contract="v1beta1"))
    assert text.startswith("There are no providers in the cluster.")