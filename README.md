# capiop

A library for looking after the Cluster API providers in a management cluster.
It can remove providers, plan which of them can be upgraded, find the latest
release of the operator, and list the resources that belong to a component.
A small `capioperator` command handles option checking and help text.

## Installation

```
pip install .
```

To run the tests:

```
pip install ".[test]"
pytest
```

## Library

The cluster is reached through the `ClusterClient` interface in
`capiop.resources`. `InMemoryClusterClient` implements it entirely in memory.
You fill it with `add_provider`, `add_deployment` and `add_object`. The object
model is `Provider`, `ProviderType`, `Deployment` and `DeploymentCondition`.
Missing objects raise `NotFoundError`, and kinds the cluster does not know raise
`NoKindMatchError`.

### Deleting providers (`capiop.delete`)

- `selector_from_provider("name[:namespace]")` turns a provider string into a
  field selector. A string with more than three colon-separated parts raises
  `ValueError`.
- `DeleteGroup` collects what to delete. Add entries with `delete(provider_type,
  *names)`, or with `delete_all()` for every provider type. `execute(client,
  options)` then deletes them. It retries with exponential backoff for up to ten
  passes and raises `TimeoutError` if providers are still left.
- `delete_providers` runs a single deletion pass. With `include_namespace` it
  also removes each provider's namespace, skipping `default` and `kube-*`. With
  `include_crds` it also removes the provider's CRD.
- `run_delete(options, client)` checks a `DeleteOptions`. You must set either
  `delete_all` or at least one provider list, and not both. It then carries out
  the deletion.

```python
from capiop.delete import DeleteOptions, run_delete, selector_from_provider
from capiop.resources import InMemoryClusterClient, Provider, ProviderType

selector_from_provider("aws:infra")
# {'metadata.name': 'aws', 'metadata.namespace': 'infra'}

client = InMemoryClusterClient()
client.add_provider(Provider("aws", "infra", ProviderType.INFRASTRUCTURE, version="v2.0.1"))
run_delete(DeleteOptions(infrastructure_providers=["aws:infra"]), client)
client.list_providers(ProviderType.INFRASTRUCTURE)  # []
```

### Planning upgrades (`capiop.upgrade`, `capiop.upgrade_plan`)

- `UpgradePlan` and `UpgradeItem` hold the plan. `ProviderSourceType` records
  where a provider's manifests come from: `BUILTIN`, `CUSTOM_URL` or
  `CONFIG_MAP`.
- `sort_upgrade_items` orders the plan's providers by type, then name, then
  namespace.
- `prettify_target_version` shows an empty target as "Already up to date".
- `get_installed_providers(client)` returns every installed provider and the
  contract. The contract comes from the core provider and defaults to `v1beta1`.
- `get_provider_fetch_config(provider, provider_urls)` picks the source. A URL
  set on the provider wins. After that it looks in `provider_urls`, a mapping
  from `(name, ProviderType)` to URL. A provider found in neither is treated as
  coming from a config map.
- `plan_upgrade(client, repository_factory, provider_urls)` builds the plan and
  leaves out providers that come from config maps. The factory receives a
  manifest URL and returns a repository whose `default_version` is the target.
- `plan_capi_operator_upgrade(client, repository_factory)` compares the image
  tag of the operator deployment's `manager` container with the latest release.
  It returns a `CapiOperatorUpgradePlan`, which includes whether the deployment
  is externally managed.
- `format_upgrade_plan(plan, supported_contract)` renders the plan as a table,
  followed by advice on what to do next.

### Helpers (`capiop.utils`)

- `parse_semantic` and `SemanticVersion` parse and order semantic versions.
- `get_latest_release(repo)` works with a `Repository`, which provides
  `components_path`, `get_versions` and `get_file`. It takes the three newest
  valid versions, release versions first, and returns the first one whose
  components file can be fetched, prefixed with `v`.
- `get_deployment_by_labels` returns the one deployment with the given labels.
  It raises `NotFoundError` if there is none and `ValueError` if there are
  several.
- `check_deployment_availability` reports whether that deployment has the
  condition `Available=True`.
- `ensure_namespace_exists` creates a namespace if it is missing.
- `get_kubeconfig_location` returns `$KUBECONFIG`, or `~/.kube/config` if that
  is not set.

### Component resources (`capiop.proxy`)

`ControllerProxy(client)` offers two lookups:

- `list_resources(labels, *namespaces)` returns the Secrets, ConfigMaps,
  Services, ServiceAccounts, Deployments, DaemonSets, Roles and RoleBindings in
  the given namespaces that match the labels. It also returns matching
  cluster-wide Namespaces, webhook configurations, CRDs, ClusterRoles and
  ClusterRoleBindings.
- `get_resource_names` returns the names of objects of a kind that start with a
  given prefix.

Kinds the cluster does not know produce no results rather than an error.

### Help text (`capiop.text`)

`long_desc` removes the common indentation from a block of text and trims it.
`examples` trims a block and indents every line by two spaces.

## Command line

```
capioperator --help
capioperator upgrade apply --contract v1beta1
capioperator move --to-directory /tmp/backup-directory
```

- `upgrade apply` needs either `--contract` or provider flags (`--core`,
  `-b/--bootstrap`, `-c/--control-plane`, `-i/--infrastructure`, `--addon`), but
  not both.
- `move` needs one of `--to-kubeconfig`, `--to-directory`, `--from-directory` or
  `--dry-run`. Some flags cannot be combined:
  - `--to-directory` with `--to-kubeconfig`
  - `--from-directory` with `--to-directory`
  - `--from-directory` with `--kubeconfig`
- `upgrade` with no subcommand prints its help.

Errors are printed to standard error and the command exits with status 1.
`-v 5` or higher also prints the traceback.

## What it does not do

- The package has no client for a live cluster. Every operation works through
  a `ClusterClient`, and the only one supplied is `InMemoryClusterClient`.
- It does not fetch release repositories. The caller supplies repositories
  through the factory functions.
- `move` and `upgrade apply` only check their options. When the options are
  valid, they report that the operation is not supported.
- The command line has no `delete` or `upgrade plan` subcommands. Use
  `run_delete`, `plan_upgrade` and `format_upgrade_plan` from Python instead.