import sys
import logging
import argparse
from enum import Enum
from collections import namedtuple
from typing import List, Optional, Sequence, Tuple

from selfwatch import settings
from selfwatch.supervisor.process_table import NO_PID

log = logging.getLogger(__name__)

_WORKER_DEST = "selfwatch_is_worker"
_WATCHDOG_PID_DEST = "selfwatch_watchdog_pid"
_RESERVED_DESTS = {_WORKER_DEST, _WATCHDOG_PID_DEST}


class Role(Enum):
    """Which part of the program this invocation plays."""
    SUPERVISOR = "supervisor"
    WORKER = "worker"


ForwardedArgument = namedtuple('ForwardedArgument', ['name', 'values'])
ForwardedArgument.__doc__ = "A recognized option as `--name` plus the raw value strings it was given (empty for flags)."


class RoutedArguments(namedtuple('RoutedArguments', ['role', 'watchdog_pid', 'forwarded', 'positionals', 'namespace', 'argv'])):
    """
    The outcome of routing the command line.

    `argv` is the original argument list without the reserved selfwatch flags;
    it is what every worker receives. `forwarded` and `positionals` describe
    the recognized options and positional arguments found in it.
    """
    __slots__ = ()

    @property
    def is_worker(self) -> bool:
        return self.role is Role.WORKER

    def worker_argv(self) -> List[str]:
        """Returns the arguments passed verbatim to every worker."""
        return list(self.argv)


def add_reserved_arguments(parser: argparse.ArgumentParser) -> None:
    """Registers the worker-mode and supervisor-PID flags on the parser, once."""
    if settings.WORKER_FLAG in parser._option_string_actions:
        return
    parser.add_argument(settings.WORKER_FLAG, dest=_WORKER_DEST, action="store_true", help=argparse.SUPPRESS)
    parser.add_argument(
        settings.WATCHDOG_PID_FLAG, dest=_WATCHDOG_PID_DEST, type=int, default=NO_PID, help=argparse.SUPPRESS
    )


def _canonical_name(action: argparse.Action, used: str) -> str:
    """Prefers the first long option string of an action (`-p` -> `--port`)."""
    for option in action.option_strings:
        if option.startswith("--"):
            return option
    return used


def _find_action(parser: argparse.ArgumentParser, token: str) -> Tuple[Optional[argparse.Action], str, Optional[str]]:
    """
    Resolves a raw token to the parser action it triggers.

    Handles `--name=value`, attached short values (`-p8080`) and unambiguous
    long-option abbreviations when the parser allows them.

    :return: (action or None, the option string used, inline value or None)
    """
    actions = parser._option_string_actions
    if token in actions:
        return actions[token], token, None

    option, sep, inline = token.partition("=")
    if sep and option in actions:
        return actions[option], option, inline

    if not token.startswith("--") and len(token) > 2 and token[:2] in actions:
        action = actions[token[:2]]
        if action.nargs != 0:
            return action, token[:2], token[2:]

    if option.startswith("--") and parser.allow_abbrev:
        matches = [name for name in actions if name.startswith(option)]
        if len(matches) == 1:
            return actions[matches[0]], matches[0], inline if sep else None

    return None, token, None


def _split_short_cluster(parser: argparse.ArgumentParser, token: str) -> List[Tuple[argparse.Action, str, Optional[str]]]:
    """
    Splits combined short flags (`-vq`, `-vvv`, `-vp8080`) into single options.

    Mirrors argparse: each character is a zero-argument flag until one takes a
    value, which then swallows the rest of the token. Returns an empty list if
    any character is not a known option.
    """
    actions = parser._option_string_actions
    prefix = token[0]
    resolved = []
    rest = token[1:]
    while rest:
        option = prefix + rest[0]
        action = actions.get(option)
        if action is None:
            return []
        rest = rest[1:]
        if action.nargs == 0:
            resolved.append((action, option, None))
            continue
        resolved.append((action, option, rest or None))
        break
    return resolved


def _resolve(parser: argparse.ArgumentParser, token: str) -> List[Tuple[argparse.Action, str, Optional[str]]]:
    action, used, inline = _find_action(parser, token)
    if action is not None:
        return [(action, used, inline)]
    if not token.startswith(parser.prefix_chars[0] * 2):
        return _split_short_cluster(parser, token)
    return []


def _take_values(action: argparse.Action, tokens: Sequence[str], start: int, prefix_chars: str) -> List[str]:
    """Returns the value tokens that follow an option, according to its nargs."""
    nargs = action.nargs
    if nargs == 0:
        return []
    if nargs is None:
        return list(tokens[start:start + 1])
    if isinstance(nargs, int):
        return list(tokens[start:start + nargs])

    values = []
    for token in tokens[start:]:
        if token == "--" or (token[:1] in prefix_chars and len(token) > 1 and not _is_negative_number(token)):
            break
        values.append(token)
        if nargs == argparse.OPTIONAL:
            break
    return values


def _is_negative_number(token: str) -> bool:
    try:
        float(token)
    except ValueError:
        return False
    return True


def _is_option(token: str, prefix_chars: str) -> bool:
    return bool(token) and token[:1] in prefix_chars and len(token) > 1 and not _is_negative_number(token)


def _subparsers(parser: argparse.ArgumentParser) -> Optional[argparse.Action]:
    for action in parser._actions:
        if isinstance(action, argparse._SubParsersAction):
            return action
    return None


def strip_reserved(parser: argparse.ArgumentParser, argv: Sequence[str]) -> List[str]:
    """
    Returns argv without the reserved selfwatch flags and their values.

    Everything else, including options of subcommands and combined short
    flags, is kept token for token. Nothing after a `--` separator or a
    subcommand name is touched, since the top-level parser never sees it.
    """
    tokens = list(argv)
    kept: List[str] = []
    subparsers = _subparsers(parser)
    i = 0
    while i < len(tokens):
        token = tokens[i]
        i += 1
        if token == "--" or (subparsers is not None and token in subparsers.choices):
            kept.append(token)
            kept.extend(tokens[i:])
            break
        if token.startswith("--"):
            action, _, inline = _find_action(parser, token)
            if action is not None and action.dest in _RESERVED_DESTS:
                if inline is None:
                    i += len(_take_values(action, tokens, i, parser.prefix_chars))
                continue
        kept.append(token)
    return kept


def collect_forwarded(parser: argparse.ArgumentParser, argv: Sequence[str]) -> Tuple[Tuple[ForwardedArgument, ...], Tuple[str, ...]]:
    """
    Walks the raw argument list and captures every recognized option in order.

    Combined short flags are split, and once a subcommand name is seen the
    walk continues with that subcommand's parser. The two reserved selfwatch
    flags are dropped; everything else keeps the exact value strings the user
    typed.

    :return: (forwarded options, positional arguments)
    """
    forwarded: List[ForwardedArgument] = []
    positionals: List[str] = []
    tokens = list(argv)
    i = 0

    while i < len(tokens):
        token = tokens[i]
        i += 1
        if token == "--":
            positionals.extend(tokens[i:])
            break
        if not _is_option(token, parser.prefix_chars):
            positionals.append(token)
            subparsers = _subparsers(parser)
            if subparsers is not None and token in subparsers.choices:
                parser = subparsers.choices[token]
            continue

        resolved = _resolve(parser, token)
        if not resolved:
            log.debug(f"Option '{token}' not recognized, it is still passed on as typed.")
            continue

        for action, used, inline in resolved:
            if inline is not None:
                values = [inline]
            else:
                values = _take_values(action, tokens, i, parser.prefix_chars)
                i += len(values)
            if action.dest in _RESERVED_DESTS:
                continue
            forwarded.append(ForwardedArgument(_canonical_name(action, used), tuple(values)))

    return tuple(forwarded), tuple(positionals)


def route_arguments(parser: Optional[argparse.ArgumentParser] = None, argv: Optional[Sequence[str]] = None) -> RoutedArguments:
    """
    Parses the command line and decides whether this invocation is the worker.

    Malformed arguments are reported by argparse itself, which exits.

    :param parser: The application's parser. A bare parser is used when omitted.
    :param argv: The arguments to parse. Defaults to `sys.argv[1:]`.
    :return: The routed arguments; `namespace` is the application's parsed namespace.
    """
    parser = parser or argparse.ArgumentParser()
    argv = list(sys.argv[1:] if argv is None else argv)
    add_reserved_arguments(parser)

    namespace = parser.parse_args(argv)
    is_worker = getattr(namespace, _WORKER_DEST)
    watchdog_pid = getattr(namespace, _WATCHDOG_PID_DEST)
    for dest in _RESERVED_DESTS:
        delattr(namespace, dest)

    worker_argv = strip_reserved(parser, argv)
    forwarded, positionals = collect_forwarded(parser, worker_argv)
    role = Role.WORKER if is_worker else Role.SUPERVISOR
    log.debug(f"Routed arguments: role={role.value}, watchdog_pid={watchdog_pid}, forwarded={len(forwarded)}")
    return RoutedArguments(role, watchdog_pid, forwarded, positionals, namespace, tuple(worker_argv))
