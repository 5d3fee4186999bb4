# deachat/cli/main.py
import argparse
import sys

from deachat.cli import api, logging as logging_cli, tools
from deachat.cli.env import extract_env_files, load_env_files


def main(argv=None):

    env_files, argv = extract_env_files(sys.argv[1:] if argv is None else argv)
    if env_files:
        load_env_files(env_files)

    parser = argparse.ArgumentParser(prog="deachat", description="deachat CLI toolkit")
    parser.add_argument(
        "--env-file",
        action="append",
        metavar="PATH",
        help="Load KEY=value settings before running (repeatable)",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    api_parser = subparsers.add_parser("api", help="Chat server control")
    api_subparsers = api_parser.add_subparsers(dest="subcommand", required=True)
    api.register_subcommands(api_subparsers)

    logging_parser = subparsers.add_parser("logging", help="Logging utilities")
    logging_subparsers = logging_parser.add_subparsers(
        dest="subcommand", required=True
    )
    logging_cli.register_subcommands(logging_subparsers)

    tools_parser = subparsers.add_parser("tools", help="Tool server utilities")
    tools_subparsers = tools_parser.add_subparsers(dest="subcommand", required=True)
    tools.register_subcommands(tools_subparsers)

    args = parser.parse_args(argv)

    if args.command == "api":
        api.dispatch(args)
    elif args.command == "logging":
        logging_cli.dispatch(args)
    elif args.command == "tools":
        tools.dispatch(args)


if __name__ == "__main__":
    main()
