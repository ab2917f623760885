"""Tests for argument routing.

Tests cover:
- Role detection from the reserved flags
- Forwarding of recognized options in encounter order
- Value forms (--name value, --name=value, -xVALUE, flags, nargs)
- Reserved flags never being forwarded
- Subcommands and combined short flags reaching the worker unchanged
"""

from __future__ import annotations

import argparse

import pytest

from selfwatch.supervisor.arguments import (
    ForwardedArgument,
    Role,
    add_reserved_arguments,
    collect_forwarded,
    route_arguments,
)


@pytest.fixture
def parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="app")
    parser.add_argument("-p", "--port", type=int, default=8080)
    parser.add_argument("--host", default="localhost")
    parser.add_argument("-v", "--verbose", action="store_true")
    parser.add_argument("--tags", nargs="*", default=[])
    parser.add_argument("paths", nargs="*")
    return parser


# =============================================================================
# Role Detection
# =============================================================================


class TestRole:
    """Tests for supervisor/worker role detection."""

    def test_plain_invocation_is_supervisor(self, parser):
        routed = route_arguments(parser, ["--port", "9000"])

        assert routed.role is Role.SUPERVISOR
        assert not routed.is_worker
        assert routed.watchdog_pid == -1

    def test_worker_flag_makes_worker(self, parser):
        routed = route_arguments(parser, ["--isMain", "--watchdogPID", "4242", "--port", "9000"])

        assert routed.role is Role.WORKER
        assert routed.is_worker
        assert routed.watchdog_pid == 4242

    def test_reserved_values_are_removed_from_namespace(self, parser):
        routed = route_arguments(parser, ["--isMain", "--watchdogPID", "1"])

        assert not hasattr(routed.namespace, "selfwatch_is_worker")
        assert not hasattr(routed.namespace, "selfwatch_watchdog_pid")
        assert routed.namespace.port == 8080

    def test_reserved_arguments_are_registered_once(self, parser):
        add_reserved_arguments(parser)
        add_reserved_arguments(parser)

        assert route_arguments(parser, ["--isMain"]).is_worker

    def test_reserved_flags_hidden_from_help(self, parser):
        add_reserved_arguments(parser)

        assert "isMain" not in parser.format_help()

    def test_malformed_arguments_exit(self, parser):
        with pytest.raises(SystemExit):
            route_arguments(parser, ["--port", "not-a-number"])

    def test_default_parser(self):
        assert route_arguments(None, []).role is Role.SUPERVISOR


# =============================================================================
# Forwarding
# =============================================================================


class TestForwarding:
    """Tests for the forwarded argument set."""

    def test_forwards_in_encounter_order(self, parser):
        routed = route_arguments(parser, ["--host", "example.org", "--port", "9000"])

        assert routed.forwarded == (
            ForwardedArgument("--host", ("example.org",)),
            ForwardedArgument("--port", ("9000",)),
        )

    def test_reserved_flags_are_not_forwarded(self, parser):
        routed = route_arguments(parser, ["--watchdogPID", "7", "--port", "1", "--isMain"])

        assert [a.name for a in routed.forwarded] == ["--port"]

    def test_short_and_inline_forms_use_long_name(self, parser):
        forwarded, _ = collect_forwarded(parser, ["-p9000", "--host=example.org", "-p", "1"])

        assert forwarded == (
            ForwardedArgument("--port", ("9000",)),
            ForwardedArgument("--host", ("example.org",)),
            ForwardedArgument("--port", ("1",)),
        )

    def test_flags_forward_without_value(self, parser):
        routed = route_arguments(parser, ["-v"])

        assert routed.forwarded == (ForwardedArgument("--verbose", ()),)
        assert routed.worker_argv() == ["-v"]

    def test_variable_nargs(self, parser):
        routed = route_arguments(parser, ["--tags", "a", "b", "--port", "1"])

        assert routed.forwarded[0] == ForwardedArgument("--tags", ("a", "b"))
        assert routed.worker_argv() == ["--tags", "a", "b", "--port", "1"]

    def test_abbreviated_option_is_forwarded_by_full_name(self, parser):
        routed = route_arguments(parser, ["--ho", "example.org"])

        assert routed.forwarded == (ForwardedArgument("--host", ("example.org",)),)

    def test_positionals_follow_options(self, parser):
        routed = route_arguments(parser, ["--port", "1", "a.txt", "b.txt"])

        assert routed.positionals == ("a.txt", "b.txt")
        assert routed.worker_argv() == ["--port", "1", "a.txt", "b.txt"]

    def test_dash_positionals_are_escaped(self, parser):
        routed = route_arguments(parser, ["--", "-weird"])

        assert routed.worker_argv() == ["--", "-weird"]

    def test_values_are_kept_verbatim(self, parser):
        routed = route_arguments(parser, ["--port", "0009000"])

        assert routed.namespace.port == 9000
        assert routed.worker_argv() == ["--port", "0009000"]

    def test_worker_argv_reparses_to_same_namespace(self, parser):
        supervisor = route_arguments(parser, ["-p", "1", "--tags", "x", "-v", "f"])
        worker = route_arguments(parser, ["--isMain", "--watchdogPID", "5", *supervisor.worker_argv()])

        assert worker.namespace == supervisor.namespace
        assert worker.forwarded == supervisor.forwarded


# =============================================================================
# Worker Command Line
# =============================================================================


@pytest.fixture
def cli() -> argparse.ArgumentParser:
    """A parser with counted and combinable flags plus a subcommand."""
    parser = argparse.ArgumentParser(prog="app")
    parser.add_argument("-v", "--verbose", action="count", default=0)
    parser.add_argument("-q", "--quiet", action="store_true")
    commands = parser.add_subparsers(dest="command")
    serve = commands.add_parser("serve")
    serve.add_argument("--port", type=int, default=80)
    serve.add_argument("--watch", action="store_true")
    return parser


def reparse_as_worker(parser, supervisor):
    return route_arguments(parser, ["--isMain", "--watchdogPID", "5", *supervisor.worker_argv()])


class TestWorkerArgv:
    """Tests for the argument list every worker receives."""

    def test_subcommand_options_reach_worker(self, cli):
        supervisor = route_arguments(cli, ["serve", "--port", "9000"])

        assert supervisor.worker_argv() == ["serve", "--port", "9000"]
        worker = reparse_as_worker(cli, supervisor)
        assert worker.is_worker
        assert worker.namespace == supervisor.namespace
        assert worker.namespace.port == 9000

    def test_subcommand_options_are_collected(self, cli):
        routed = route_arguments(cli, ["-v", "serve", "--port", "9000"])

        assert routed.forwarded == (
            ForwardedArgument("--verbose", ()),
            ForwardedArgument("--port", ("9000",)),
        )
        assert routed.positionals == ("serve",)

    def test_subcommand_option_resembling_reserved_flag_is_kept(self, cli):
        routed = route_arguments(cli, ["serve", "--watch"])

        assert routed.worker_argv() == ["serve", "--watch"]
        assert reparse_as_worker(cli, routed).namespace.watch is True

    @pytest.mark.parametrize("argv, verbose, quiet", [(["-vvv"], 3, False), (["-vq"], 1, True), (["-qvv"], 2, True)])
    def test_combined_short_flags_reach_worker(self, cli, argv, verbose, quiet):
        supervisor = route_arguments(cli, argv)

        assert supervisor.worker_argv() == argv
        worker = reparse_as_worker(cli, supervisor)
        assert worker.namespace.verbose == verbose
        assert worker.namespace.quiet is quiet

    def test_combined_short_flags_are_collected(self, cli):
        routed = route_arguments(cli, ["-vvq"])

        assert [a.name for a in routed.forwarded] == ["--verbose", "--verbose", "--quiet"]

    def test_attached_value_in_cluster(self, parser):
        forwarded, _ = collect_forwarded(parser, ["-vp9000"])

        assert forwarded == (ForwardedArgument("--verbose", ()), ForwardedArgument("--port", ("9000",)))

    @pytest.mark.parametrize(
        "reserved",
        [
            ["--isMain", "--watchdogPID", "42"],
            ["--watchdogPID=42", "--isMain"],
            ["--isM", "--watchdog", "42"],
            ["--watchdogP=42"],
        ],
    )
    def test_reserved_forms_are_stripped(self, parser, reserved):
        routed = route_arguments(parser, ["--port", "1", *reserved, "-v"])

        assert routed.worker_argv() == ["--port", "1", "-v"]

    def test_separator_protects_positionals(self, parser):
        routed = route_arguments(parser, ["--port", "1", "--", "--isMain"])

        assert routed.worker_argv() == ["--port", "1", "--", "--isMain"]
        assert not routed.is_worker
        assert routed.positionals == ("--isMain",)
