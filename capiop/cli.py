"""The capioperator command line: root command, move and upgrade apply."""

from __future__ import annotations

import argparse
import logging
import sys
import traceback
from dataclasses import dataclass, field
from typing import Callable

from .text import examples, long_desc

log = logging.getLogger(__name__)

_PROG = "capioperator"
_STACK_VERBOSITY = 5
_DEFAULT_WAIT_PROVIDER_TIMEOUT = 5 * 60

_APPLY_FLAGS = "--core, --bootstrap, --control-plane, --infrastructure, --ipam, --extension, --addon"

_ROOT_LONG = """
		Get started with Cluster API using capioperator to create a management cluster,
		install providers, and create templates for your workload cluster."""

_MOVE_LONG = """
		Move Cluster API objects and all dependencies between management clusters.

		Note: The destination cluster MUST have the required provider components installed."""

_MOVE_EXAMPLES = """
		Move Cluster API objects and all dependencies between management clusters.
		capioperator move --to-kubeconfig=target-kubeconfig.yaml

		Write Cluster API objects and all dependencies from a management cluster to directory.
		capioperator move --to-directory /tmp/backup-directory

		Read Cluster API objects and all dependencies from a directory into a management cluster.
		capioperator move --from-directory /tmp/backup-directory
	"""

_APPLY_LONG = """
		The upgrade apply command applies new versions of Cluster API providers as defined by capioperator upgrade plan.

		New version should be applied ensuring all the providers uses the same cluster API version
		in order to guarantee the proper functioning of the management cluster.

		Specifying the provider using namespace/name:version is deprecated and will be dropped in a future release."""

_APPLY_EXAMPLES = """
		# Upgrades all the providers in the management cluster to the latest version available which is compliant
		# to the v1alpha4 API Version of Cluster API (contract).
		capioperator upgrade apply --contract v1alpha4

		# Upgrades only the aws provider to the v2.0.1 version.
		capioperator upgrade apply --infrastructure aws:v2.0.1"""

# Pairs of move flags that cannot be set together.
_MOVE_EXCLUSIVE = (
    ("to_directory", "to-directory", "to_kubeconfig", "to-kubeconfig"),
    ("from_directory", "from-directory", "to_directory", "to-directory"),
    ("from_directory", "from-directory", "from_kubeconfig", "kubeconfig"),
)


@dataclass
class MoveOptions:
    """Options of the move command."""

    from_kubeconfig: str = ""
    from_kubeconfig_context: str = ""
    to_kubeconfig: str = ""
    to_kubeconfig_context: str = ""
    namespace: str = ""
    from_directory: str = ""
    to_directory: str = ""
    dry_run: bool = False


@dataclass
class UpgradeApplyOptions:
    """Options of the upgrade apply command."""

    kubeconfig: str = ""
    kubeconfig_context: str = ""
    contract: str = ""
    core_provider: str = ""
    bootstrap_providers: list[str] = field(default_factory=list)
    control_plane_providers: list[str] = field(default_factory=list)
    infrastructure_providers: list[str] = field(default_factory=list)
    ipam_providers: list[str] = field(default_factory=list)
    addon_providers: list[str] = field(default_factory=list)
    wait_providers: bool = False
    wait_provider_timeout: int = _DEFAULT_WAIT_PROVIDER_TIMEOUT

    @property
    def has_provider_names(self) -> bool:
        # IPAM providers do not count here.
        return bool(
            self.core_provider
            or self.bootstrap_providers
            or self.control_plane_providers
            or self.infrastructure_providers
            or self.addon_providers
        )


def validate_move_options(options: MoveOptions) -> None:
    """Raise ValueError if the move options are inconsistent."""
    for first_attr, first_flag, second_attr, second_flag in _MOVE_EXCLUSIVE:
        if getattr(options, first_attr) and getattr(options, second_attr):
            group = f"[{first_flag} {second_flag}]"
            raise ValueError(
                f"if any flags in the group {group} are set none of the others can be; "
                f"{group} were all set"
            )
    if not (
        options.to_directory
        or options.from_directory
        or options.to_kubeconfig
        or options.dry_run
    ):
        raise ValueError(
            "please specify a target cluster using the --to-kubeconfig flag when not using "
            "--dry-run, --to-directory or --from-directory"
        )


def validate_upgrade_apply_options(options: UpgradeApplyOptions) -> None:
    """Raise ValueError unless exactly one of --contract or provider flags is used."""
    has_names = options.has_provider_names
    if not options.contract and not has_names:
        raise ValueError(
            "Either the --contract flag or at least one of the following flags has to be set: "
            + _APPLY_FLAGS
        )
    if options.contract and has_names:
        raise ValueError(f"The --contract flag can't be used in combination with {_APPLY_FLAGS}")


def _split_csv(value: str) -> list[str]:
    return [part for part in value.split(",") if part]


def _command_parser(
    commands: argparse._SubParsersAction, name: str, short: str, long: str = "", example: str = ""
) -> argparse.ArgumentParser:
    epilog = f"Examples:\n{examples(example)}" if example else None
    return commands.add_parser(
        name,
        help=short,
        description=long_desc(long) if long else short,
        epilog=epilog,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )


def _print_help(parser: argparse.ArgumentParser) -> Callable[[argparse.Namespace], None]:
    def show(_args: argparse.Namespace) -> None:
        parser.print_help()

    return show


def _run_move(args: argparse.Namespace) -> None:
    options = MoveOptions(
        from_kubeconfig=args.kubeconfig,
        from_kubeconfig_context=args.kubeconfig_context,
        to_kubeconfig=args.to_kubeconfig,
        to_kubeconfig_context=args.to_kubeconfig_context,
        namespace=args.namespace,
        from_directory=args.from_directory,
        to_directory=args.to_directory,
        dry_run=args.dry_run,
    )
    validate_move_options(options)
    raise RuntimeError("moving Cluster API objects is not supported")


def _run_upgrade_apply(args: argparse.Namespace) -> None:
    options = UpgradeApplyOptions(
        kubeconfig=args.kubeconfig,
        kubeconfig_context=args.kubeconfig_context,
        contract=args.contract,
        core_provider=args.core,
        bootstrap_providers=args.bootstrap,
        control_plane_providers=args.control_plane,
        infrastructure_providers=args.infrastructure,
        ipam_providers=args.ipam,
        addon_providers=args.addon,
        wait_providers=args.wait_providers,
        wait_provider_timeout=args.wait_provider_timeout,
    )
    validate_upgrade_apply_options(options)
    raise RuntimeError("upgrading providers is not supported")


def _add_move(commands: argparse._SubParsersAction) -> None:
    move = _command_parser(
        commands,
        "move",
        "Move Cluster API objects and all dependencies between management clusters",
        _MOVE_LONG,
        _MOVE_EXAMPLES,
    )
    move.add_argument("--kubeconfig", default="",
                      help="Path to the kubeconfig file for the source management cluster. "
                           "If unspecified, default discovery rules apply.")
    move.add_argument("--to-kubeconfig", default="",
                      help="Path to the kubeconfig file to use for the destination management cluster.")
    move.add_argument("--kubeconfig-context", default="",
                      help="Context to be used within the kubeconfig file for the source management "
                           "cluster. If empty, current context will be used.")
    move.add_argument("--to-kubeconfig-context", default="",
                      help="Context to be used within the kubeconfig file for the destination "
                           "management cluster. If empty, current context will be used.")
    move.add_argument("-n", "--namespace", default="",
                      help="The namespace where the workload cluster is hosted. If unspecified, "
                           "the current context's namespace is used.")
    move.add_argument("--dry-run", action="store_true",
                      help="Enable dry run, don't really perform the move actions")
    move.add_argument("--to-directory", default="",
                      help="Write Cluster API objects and all dependencies from a management "
                           "cluster to directory.")
    move.add_argument("--from-directory", default="",
                      help="Read Cluster API objects and all dependencies from a directory into "
                           "a management cluster.")
    move.set_defaults(handler=_run_move)


def _add_upgrade(commands: argparse._SubParsersAction) -> None:
    upgrade = _command_parser(
        commands, "upgrade", "Upgrade core and provider components in a management cluster"
    )
    upgrade.set_defaults(handler=_print_help(upgrade))
    upgrade_commands = upgrade.add_subparsers(dest="upgrade_command", metavar="COMMAND")

    apply = _command_parser(
        upgrade_commands,
        "apply",
        "Apply new versions of Cluster API core and providers in a management cluster",
        _APPLY_LONG,
        _APPLY_EXAMPLES,
    )
    apply.add_argument("--kubeconfig", default="",
                       help="Path to the kubeconfig file to use for accessing the management "
                            "cluster. If unspecified, default discovery rules apply.")
    apply.add_argument("--kubeconfig-context", default="",
                       help="Context to be used within the kubeconfig file. If empty, current "
                            "context will be used.")
    apply.add_argument("--contract", default="",
                       help="The API Version of Cluster API (contract, e.g. v1alpha4) the "
                            "management cluster should upgrade to")
    apply.add_argument("--core", default="",
                       help="Core provider instance version (e.g. cluster-api:v1.1.5) to upgrade "
                            "to. This flag can be used as alternative to --contract.")
    slices = (
        (("-i", "--infrastructure"), "Infrastructure providers instance and versions (e.g. aws:v2.0.1)"),
        (("-b", "--bootstrap"), "Bootstrap providers instance and versions (e.g. kubeadm:v1.1.5)"),
        (("-c", "--control-plane"), "ControlPlane providers instance and versions (e.g. kubeadm:v1.1.5)"),
        (("--ipam",), "IPAM providers and versions (e.g. infoblox:v0.0.1)"),
        (("--addon",), "Add-on providers and versions (e.g. helm:v0.1.0)"),
    )
    for flags, text in slices:
        apply.add_argument(
            *flags,
            type=_split_csv,
            action="extend",
            default=[],
            help=f"{text} to upgrade to. This flag can be used as alternative to --contract.",
        )
    apply.add_argument("--wait-providers", action="store_true",
                       help="Wait for providers to be upgraded.")
    apply.add_argument("--wait-provider-timeout", type=int, default=_DEFAULT_WAIT_PROVIDER_TIMEOUT,
                       help="Wait timeout per provider upgrade in seconds. This value is ignored "
                            "if --wait-providers is false")
    apply.set_defaults(handler=_run_upgrade_apply)


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser of the capioperator command."""
    parser = argparse.ArgumentParser(
        prog=_PROG,
        description=long_desc(_ROOT_LONG),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "-v",
        dest="verbosity",
        type=int,
        default=0,
        help="Set the log level verbosity.",
    )
    parser.set_defaults(handler=_print_help(parser))
    commands = parser.add_subparsers(
        dest="command", title="Cluster Management Commands", metavar="COMMAND"
    )
    _add_move(commands)
    _add_upgrade(commands)
    return parser


def main(argv: list[str] | None = None) -> int:
    """Run the command line; return the process exit status."""
    parser = build_parser()
    try:
        args = parser.parse_args(argv)
    except SystemExit as exc:
        return 0 if exc.code in (0, None) else 1

    logging.basicConfig(level=logging.DEBUG if args.verbosity > 0 else logging.INFO)
    try:
        args.handler(args)
    except (ValueError, RuntimeError) as exc:
        if args.verbosity >= _STACK_VERBOSITY:
            traceback.print_exception(type(exc), exc, exc.__traceback__, file=sys.stderr)
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())