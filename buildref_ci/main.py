"""CI entry point: resolve a ref, name the build, emit outputs, and clean up in the post phase."""

from __future__ import annotations

import argparse
import json
import os
import sys
from collections.abc import Mapping
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from loguru import logger

from buildref.core.buildname import generate
from buildref.providers import create_provider
from buildref.types import BuildName
from buildref_ci.actions import WorkflowCommands
from buildref_ci.inputs import DATE_SOURCES, Inputs, collect_inputs, load_inputs_config
from buildref_ci.state import PostActionContext, load_context, save_context

SUBCOMMANDS = ("run", "post")


def _emit_files(inputs: Inputs, files: list, commands: WorkflowCommands) -> None:
    for file in files:
        env_name = inputs.file_env.get(file.path)
        if not env_name:
            commands.warning(f"Provider exported unrequested file '{file.path}'")
            continue
        commands.export_variable(env_name, file.content)
        logger.info(f"Exporting file '{file.path}' as environment variable '{env_name}'")


def run_action(
    inputs: Inputs,
    commands: WorkflowCommands,
    env: Mapping[str, str] | None = None,
    state_file: Path | None = None,
    now: datetime | None = None,
    provider_kwargs: Mapping[str, Any] | None = None,
) -> BuildName:
    """Resolve the ref, set outputs and export requested files.

    Credentials the provider acquired are masked and the post-action context
    is saved even when resolution fails, so a token issued before the failure
    stays out of the log and is still revoked in the post phase.
    """
    provider = create_provider(inputs.provider, env=env, **(provider_kwargs or {}))

    try:
        with commands.group(f"Resolve {inputs.ref} ({inputs.provider.value})"):
            info = provider.resolve(inputs.repositories, inputs.ref, inputs.files)
    finally:
        for secret in provider.secrets():
            commands.set_secret(secret)
        context = PostActionContext(provider=inputs.provider.value, state=provider.post_state())
        try:
            save_context(context, commands, state_file)
        except Exception as e:
            commands.warning(f"Failed to save post-action context: {e}")

    commands.set_output("token", info.token, secret=True)
    commands.set_output("commit", info.commit)
    logger.info(f"Resolved {inputs.ref} to: {info.commit}")

    if inputs.date_source == "now":
        date = now or datetime.now(UTC)
    else:
        date = info.commit_date

    build_name = generate(inputs.ref, info.commit, date, inputs.run_number)
    commands.set_output("build-template", build_name.template)
    commands.set_output("build-short", build_name.short)
    commands.set_output("build-components", json.dumps(build_name.as_dict()))
    logger.info("Build names:")
    logger.info(f"  template: {build_name.template}")
    logger.info(f"  short: {build_name.short}")

    _emit_files(inputs, info.files, commands)
    return build_name


def run_post(
    commands: WorkflowCommands,
    env: Mapping[str, str] | None = None,
    state_file: Path | None = None,
    provider_kwargs: Mapping[str, Any] | None = None,
) -> None:
    """Best-effort cleanup for the provider recorded by the main phase. Never raises."""
    try:
        context = load_context(commands, state_file)
        if context is None:
            logger.info("No post-action context, nothing to clean up")
            return

        provider = create_provider(context.provider, env=env, **(provider_kwargs or {}))
        result = provider.cleanup(context.state)
    except Exception as e:
        commands.warning(f"Post-action cleanup failed: {e}")
        return

    for message in result.warnings:
        commands.warning(message)
    if result.actions:
        logger.info(f"Cleanup ({result.provider}): {', '.join(result.actions)}")


def _add_common_options(parser: argparse.ArgumentParser, suppress: bool = False) -> None:
    # subcommand copies only override the top-level value when given
    parser.add_argument(
        "--log-level",
        default=argparse.SUPPRESS if suppress else "INFO",
        choices=["TRACE", "DEBUG", "INFO", "WARNING", "ERROR"],
        help="stderr log level",
    )
    parser.add_argument(
        "--state-file",
        type=Path,
        default=argparse.SUPPRESS if suppress else None,
        help="post-action context file for local runs (default: GITHUB_STATE)",
    )


def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="buildref-ci",
        description="Resolve a source-control ref to a commit and derive a build name",
    )
    _add_common_options(p)

    common = argparse.ArgumentParser(add_help=False)
    _add_common_options(common, suppress=True)

    sub = p.add_subparsers(dest="command")

    run = sub.add_parser("run", parents=[common], help="resolve the ref and emit outputs (default)")
    run.add_argument("--repository", "--repositories", dest="repositories", default=None,
                     help="owner/name or URL; several separated by commas or newlines")
    run.add_argument("--ref", default=None, help="branch, tag, PR merge ref or changelist spec")
    run.add_argument("--provider", default=None, help="github, gitlab, bitbucket or perforce")
    run.add_argument("--files", default=None, help="';'-separated 'path|ENV_VAR' pairs, 'path!' = required")
    run.add_argument("--run-number", default=None, help="run number (default: GITHUB_RUN_NUMBER)")
    run.add_argument("--date-source", choices=DATE_SOURCES, default=None,
                     help="timestamp used for the build name (default: commit)")
    run.add_argument("--config", type=Path, default=None, help="YAML file with input values")

    sub.add_parser("post", parents=[common], help="revoke credentials acquired by the run step")
    return p


def _normalize_argv(argv: list[str]) -> list[str]:
    # no subcommand means "run"
    for i, arg in enumerate(argv):
        if arg in SUBCOMMANDS or arg in ("-h", "--help"):
            return argv
        if not arg.startswith("-"):
            continue
        if arg.split("=", 1)[0] in ("--log-level", "--state-file"):
            continue
        return [*argv[:i], "run", *argv[i:]]
    return [*argv, "run"]


def main(argv: list[str] | None = None) -> int:
    argv = list(sys.argv[1:] if argv is None else argv)
    args = _build_parser().parse_args(_normalize_argv(argv))

    logger.remove()
    logger.add(sys.stderr, level=args.log_level)

    commands = WorkflowCommands()

    if args.command == "post":
        run_post(commands, state_file=args.state_file)
        return 0

    try:
        config = load_inputs_config(args.config) if args.config else None
        inputs = collect_inputs(
            {
                "repositories": args.repositories,
                "ref": args.ref,
                "provider": args.provider,
                "files": args.files,
                "run-number": args.run_number,
                "date-source": args.date_source,
            },
            env=os.environ,
            config=config,
        )
        run_action(inputs, commands, state_file=args.state_file)
    except Exception as e:
        commands.error(str(e))
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
