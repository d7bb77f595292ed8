# argparser.py
import argparse
import commands


class ConsoleArgumentParser(argparse.ArgumentParser):
    # a typo must not end the console
    def error(self, message):
        raise ValueError(f"{self.prog}: {message}")


def build_parser():
    parser = ConsoleArgumentParser(prog="cargo-console")
    subs = parser.add_subparsers(dest="command", parser_class=ConsoleArgumentParser)

    # Cargo actions; everything after the action goes to cargo unchanged
    for action in ("bench", "build", "doc", "run", "test"):
        p = subs.add_parser(action, help=f"cargo {action} [args...]")
        p.set_defaults(func=commands.simple_action, extra=[])

    for action in ("clean", "update"):
        subs.add_parser(action, help=f"cargo {action}").set_defaults(func=commands.simple_action)

    new = subs.add_parser("new", help="cargo new <name> [--bin]")
    new.add_argument("name")
    kind = new.add_mutually_exclusive_group()
    kind.add_argument("--bin", dest="binary", action="store_const", const=True, default=None)
    kind.add_argument("--lib", dest="binary", action="store_const", const=False)
    new.set_defaults(func=commands.new_project)

    search = subs.add_parser("search", help="cargo search <term>")
    search.add_argument("term", nargs="+")
    search.set_defaults(func=commands.search_crates)

    # Task control
    subs.add_parser("jobs", help="List tasks and their status").set_defaults(func=commands.jobs_builtin)

    show = subs.add_parser("show", help="Print a task's output")
    show.add_argument("task")
    show.set_defaults(func=commands.show_builtin)

    kill = subs.add_parser("kill", help="Stop a running task")
    kill.add_argument("task")
    kill.set_defaults(func=commands.kill_builtin)

    wait = subs.add_parser("wait", help="Wait for one task, or all of them")
    wait.add_argument("task", nargs="?")
    wait.add_argument("--timeout", "-t", type=float, default=None)
    wait.set_defaults(func=commands.wait_builtin)

    subs.add_parser("exit", help="Stop all tasks and leave").set_defaults(func=commands.exit_console)

    return parser


# actions whose trailing arguments are passed through to cargo
PASSTHROUGH = {"bench", "build", "doc", "run", "test"}


def parse_command(parser, argv):
    """Parse argv; for pass-through actions the rest of the line becomes args.extra.

    argparse cannot take option-like tokens ("--release") as a leading
    REMAINDER, so those actions are split off before parsing."""
    if argv and argv[0] in PASSTHROUGH:
        args = parser.parse_args(argv[:1])
        args.extra = list(argv[1:])
        return args
    return parser.parse_args(argv)
