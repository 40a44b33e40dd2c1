"""Command-line interface for devvy.

This module provides the ``devvy`` commands:
- start, stop and rebuild the development container
- connect over ssh or mosh, or as root through docker exec
- show status, logs and VNC connection details
- set up, clean up and sync editor settings
"""

import argparse
import json
import logging
import sys
from pathlib import Path

from devvy import __version__
from devvy.core import shell
from devvy.core.cleanup import CleanupPlan
from devvy.core.config import load_app_config
from devvy.core.env import validate_environment
from devvy.core.errors import DevvyError, EngineUnreachableError, LifecycleError, PreconditionError
from devvy.core.lifecycle import LifecycleOrchestrator, LifecycleOutcome, LifecycleStep
from devvy.core.paths import ProjectPaths, expand_path, get_known_hosts_path, get_project_root
from devvy.core.prompt import ConsolePrompter, Prompter
from devvy.core.setup import SetupWizard
from devvy.core.types import AppConfig, DockerConfig, ReadinessConfig
from devvy.editor.profiles import EditorKind, attached_container_uri, get_profile, workspace_folders
from devvy.editor.sync import EditorSync
from devvy.ssh.client import SessionCommand, SSHCommandBuilder
from devvy.ssh.keys import SSHKeyManager, SSHKeyPair
from devvy.ssh.known_hosts import KnownHostsStore
from devvy.ssh.trust import TrustManager
from devvy.virtualization.base import ContainerEngine
from devvy.virtualization.compose import ComposeDriver
from devvy.virtualization.docker import DockerEngine
from devvy.virtualization.logs import STDERR, ReadinessMonitor, format_log_line, iter_log_lines, parse_time_value

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(levelname)s %(name)s: %(message)s"
LOG_LEVELS = {
    "error": logging.ERROR,
    "warn": logging.WARNING,
    "info": logging.INFO,
    "debug": logging.DEBUG,
}
UNEXPECTED_ERROR_HINTS = [
    "Re-run with --debug to see the full traceback",
    "Run 'devvy setup' if project files are damaged",
]
FOLLOW_DEFAULT_TAIL = 100
SSH_CONNECTION_ERROR = 255
VNC_PASSWORD = "devvy"

STEP_MESSAGES = {
    LifecycleStep.STOPPING: "Stopping container...",
    LifecycleStep.REMOVING: "Removing old container...",
    LifecycleStep.BUILDING: "Building container image...",
    LifecycleStep.STARTING: "Starting container...",
    LifecycleStep.WAITING_READY: "Waiting for container to become ready...",
    LifecycleStep.TRUST_REESTABLISH: "Updating SSH known_hosts...",
}


def configure_logging(level: int) -> None:
    """Send log records to stderr at the given level."""
    logging.basicConfig(level=level, format=LOG_FORMAT, stream=sys.stderr, force=True)


def print_error(error: DevvyError) -> None:
    """Print an error with its diagnostics and remediation steps."""
    print(f"Error: {error.message}", file=sys.stderr)
    if isinstance(error, LifecycleError) and error.details:
        print("", file=sys.stderr)
        for line in error.details:
            print(f"  | {line}", file=sys.stderr)
    if error.remediation:
        print("", file=sys.stderr)
        print("To fix this:", file=sys.stderr)
        for i, step in enumerate(error.remediation, 1):
            print(f"  {i}. {step}", file=sys.stderr)


def _project_paths(args: argparse.Namespace) -> ProjectPaths:
    return ProjectPaths(get_project_root(args.project_root))


def load_context(args: argparse.Namespace) -> tuple[AppConfig, ProjectPaths]:
    """Load configuration for a command and apply its log level.

    Returns:
        Tuple of (configuration, project paths).
    """
    paths = _project_paths(args)
    config = load_app_config(paths)
    if not args.verbose and not args.debug:
        logging.getLogger().setLevel(LOG_LEVELS[config.logging.level])
    return config, paths.with_compose_file(config.docker.compose_file)


def make_compose(config: AppConfig, paths: ProjectPaths) -> ComposeDriver:
    """Create the compose driver of the project."""
    return ComposeDriver(config.docker.project_name, paths.compose_file, paths.root)


def make_orchestrator(
    args: argparse.Namespace,
    config: AppConfig,
    paths: ProjectPaths,
    engine: ContainerEngine,
    prompter: Prompter,
) -> LifecycleOrchestrator:
    """Wire the lifecycle orchestrator for a command."""
    trust = TrustManager.from_config(KnownHostsStore(get_known_hosts_path()), config.ssh, prompter)

    def monitor_factory(readiness: ReadinessConfig) -> ReadinessMonitor:
        on_line = (lambda line: print(f"  | {line}")) if args.verbose else None
        return ReadinessMonitor.from_config(readiness, on_line=on_line)

    def on_step(step: LifecycleStep) -> None:
        message = STEP_MESSAGES.get(step)
        if message:
            print(message)

    return LifecycleOrchestrator(
        config,
        engine,
        make_compose(config, paths),
        trust,
        keys=SSHKeyManager(paths.secrets_dir),
        prompter=prompter,
        monitor_factory=monitor_factory,
        github_keys=SSHKeyManager(paths.github_keys_dir(config.ssh.github_key_dir)),
        on_step=on_step,
    )


def _print_warnings(outcome: LifecycleOutcome) -> None:
    for warning in outcome.warnings:
        print(f"Warning: {warning}", file=sys.stderr)


def _print_github_key(pair: SSHKeyPair) -> None:
    print()
    print("New GitHub SSH key generated. Replace the old key on GitHub with:")
    print()
    print(pair.public_key_content)
    print()
    print("  https://github.com/settings/keys")


def _resolve_editor(sync: EditorSync, name: str | None) -> EditorKind:
    if name:
        try:
            return EditorKind.parse(name)
        except ValueError as e:
            raise DevvyError(str(e)) from e

    kind = sync.detect()
    if kind is None:
        raise PreconditionError(
            "No VS Code or Cursor installation detected",
            remediation=[
                f"Install {profile.display_name} from {profile.install_url}"
                for profile in map(get_profile, EditorKind)
            ],
        )
    return kind


def cmd_start(args: argparse.Namespace) -> int:
    """Start command handler.

    Args:
        args: Parsed arguments.

    Returns:
        Exit code.
    """
    config, paths = load_context(args)
    if args.timeout is not None:
        readiness = config.readiness.model_copy(update={"timeout": args.timeout})
        config = config.model_copy(update={"readiness": readiness})

    problems = validate_environment(config, paths)
    if problems:
        for problem in problems:
            print(f"  - {problem}", file=sys.stderr)
        raise PreconditionError(
            "Environment is not ready",
            remediation=["Run 'devvy setup' to create the missing files"],
        )

    engine = DockerEngine()
    orchestrator = make_orchestrator(args, config, paths, engine, ConsolePrompter())
    outcome = orchestrator.start(build=args.build, detach=args.detach)

    if outcome.already_running:
        print("Container is already running")
        return 0

    _print_warnings(outcome)
    if args.detach:
        print("Container is running and ready")
        print("Connect with: devvy connect")
    return 0


def cmd_stop(args: argparse.Namespace) -> int:
    """Stop command handler."""
    config, paths = load_context(args)
    engine = DockerEngine()
    orchestrator = make_orchestrator(args, config, paths, engine, ConsolePrompter())
    outcome = orchestrator.stop(force=args.force)

    if outcome.already_stopped:
        print("Container is not running")
    elif outcome.cancelled:
        print("Stop cancelled")
    else:
        _print_warnings(outcome)
        print("Container stopped")
    return 0


def cmd_rebuild(args: argparse.Namespace) -> int:
    """Rebuild command handler."""
    config, paths = load_context(args)
    engine = DockerEngine()
    orchestrator = make_orchestrator(args, config, paths, engine, ConsolePrompter())
    outcome = orchestrator.rebuild(no_cache=args.no_cache, force=args.force)

    if outcome.cancelled:
        print("Rebuild cancelled")
        return 0

    if outcome.rotated_github_key is not None:
        _print_github_key(outcome.rotated_github_key)
    _print_warnings(outcome)
    print("Container rebuilt and running")
    print("Connect with: devvy connect")
    return 0


def _session_for(args: argparse.Namespace, config: AppConfig, paths: ProjectPaths) -> SessionCommand:
    if args.root:
        return SSHCommandBuilder.root_exec(config.docker.container_name, tmux=args.tmux)

    key_path = paths.secrets_dir / config.ssh.key_name
    if not key_path.exists():
        raise PreconditionError(
            f"SSH key not found at: {key_path}",
            remediation=["Run 'devvy setup' to generate SSH keys"],
        )

    builder = SSHCommandBuilder.from_config(config.ssh, key_path)
    if not args.mosh:
        return builder.ssh(tmux=args.tmux)

    if not shell.command_exists("mosh"):
        raise PreconditionError(
            "Mosh is not installed",
            remediation=[
                "Install it with 'brew install mosh' (macOS) or 'apt-get install mosh' (Linux)",
                "Or connect over ssh without --mosh",
            ],
        )
    return builder.mosh(tmux=args.tmux)


def cmd_connect(args: argparse.Namespace) -> int:
    """Connect command handler.

    Returns:
        Exit code of the session.
    """
    config, paths = load_context(args)
    engine = DockerEngine()
    if not engine.is_running(config.docker.container_name):
        raise PreconditionError(
            "Container is not running",
            remediation=["Start it first with 'devvy start'"],
        )

    session = _session_for(args, config, paths)
    print(f"Connecting to container via {session.command}...")
    print(f"  {session.display()}")

    exit_code = shell.run_interactive(session.command, session.args)
    if exit_code in (0, 130):
        return exit_code

    print(f"Connection failed with exit code: {exit_code}", file=sys.stderr)
    if exit_code == SSH_CONNECTION_ERROR and not args.root:
        print("This appears to be an SSH host key issue. Try these solutions:", file=sys.stderr)
        print("  1. Run 'devvy rebuild' to recreate the container and its trust entry", file=sys.stderr)
        print(f"  2. Remove conflicting entries from {get_known_hosts_path()}", file=sys.stderr)
        print("  3. Check if multiple SSH key types are conflicting", file=sys.stderr)
    else:
        print("Troubleshooting tips:", file=sys.stderr)
        print("  1. Ensure the container is running: devvy status", file=sys.stderr)
        print("  2. Check the container output: devvy logs", file=sys.stderr)
        print("  3. Try rebuilding the container: devvy rebuild", file=sys.stderr)
    return exit_code


def cmd_status(args: argparse.Namespace) -> int:
    """Status command handler."""
    config, paths = load_context(args)
    name = config.docker.container_name
    try:
        engine = DockerEngine()
        info = engine.find(name)
    except EngineUnreachableError:
        if not args.json:
            raise
        print(json.dumps({"status": "docker-not-running"}, indent=2))
        return 1

    if args.json:
        data = {
            "name": name,
            "exists": info is not None,
            "container": info.model_dump(mode="json") if info is not None else None,
        }
        print(json.dumps(data, indent=2))
        return 0

    if info is None:
        print(f"Container '{name}' does not exist")
        print("Create it with: devvy start")
        return 0

    if info.is_running:
        print(f"Container is running ({info.uptime()})")
    elif info.exit_code is not None:
        print(f"Container is {info.state.value} (exit code {info.exit_code})")
    else:
        print(f"Container is {info.state.value}")

    if args.details:
        print(f"  ID:      {info.id[:12]}")
        print(f"  Image:   {info.image}")
        print(f"  Created: {info.created.isoformat()}")
        for mapping in info.ports:
            host_port = mapping.host_port if mapping.host_port is not None else "-"
            print(f"  Port:    {host_port} -> {mapping.container_port}/{mapping.protocol}")
        store = KnownHostsStore(get_known_hosts_path())
        trusted = len(store.find(config.ssh.host, config.ssh.port))
        print(f"  known_hosts entries for {store.host_pattern(config.ssh.host, config.ssh.port)}: {trusted}")
    return 0


def cmd_logs(args: argparse.Namespace) -> int:
    """Logs command handler."""
    config, paths = load_context(args)
    try:
        since = parse_time_value(args.since) if args.since else None
        until = parse_time_value(args.until) if args.until else None
    except ValueError as e:
        raise DevvyError(str(e)) from e

    if args.tail is not None:
        tail = args.tail
    else:
        tail = FOLLOW_DEFAULT_TAIL if args.follow else "all"

    engine = DockerEngine()
    stream = engine.open_log_stream(
        config.docker.container_name,
        follow=args.follow,
        tail=tail,
        since=since,
        until=until,
        timestamps=args.timestamps,
    )
    with stream:
        for stream_type, line in iter_log_lines(stream):
            out = sys.stderr if stream_type == STDERR else sys.stdout
            print(format_log_line(line, args.timestamps), file=out, flush=args.follow)
    return 0


def cmd_cleanup(args: argparse.Namespace) -> int:
    """Cleanup command handler."""
    config, paths = load_context(args)
    engine = DockerEngine()
    plan = CleanupPlan(config, paths, engine, make_compose(config, paths))
    prompter = ConsolePrompter()

    if args.dry_run:
        print("DRY RUN MODE - Nothing will be removed")
        print("The following would be cleaned up:")
        for action in plan.actions:
            print(f"  - {action.name}: {action.description}")
        return 0

    if args.all:
        if not args.force and not prompter.confirm(
            "WARNING: This will remove EVERYTHING. Are you sure?", default=False
        ):
            print("Cleanup cancelled")
            return 0
        plan.run_all()
        print("Full cleanup complete")
        return 0

    selected = [
        action
        for i, action in enumerate(plan.actions, 1)
        if prompter.confirm(f"{i}. {action.description}?", default=False)
    ]
    if prompter.confirm("WARNING: FULL RESET - Remove everything?", default=False):
        plan.run_all()
        print("Full cleanup complete")
        return 0

    if not selected:
        print("No cleanup actions selected")
        return 0

    for action in selected:
        print(f"{action.name}...")
        action.run()
    print("Cleanup complete")
    print("To rebuild the environment, run: devvy setup")
    return 0


def cmd_setup(args: argparse.Namespace) -> int:
    """Setup command handler."""
    paths = _project_paths(args)
    docker_defaults = DockerConfig()
    wizard = SetupWizard(
        paths,
        ConsolePrompter(),
        ComposeDriver(
            docker_defaults.project_name,
            paths.root / docker_defaults.compose_file,
            paths.root,
        ),
        editor_sync=EditorSync(paths.editor_config_dir),
    )

    print("devvy setup wizard")
    print("This wizard will help you set up your development environment")
    print()
    wizard.run()

    print()
    print("Setup completed successfully!")
    print("Next steps:")
    print("  1. Build the container: devvy rebuild")
    print("  2. Start the container: devvy start")
    print("  3. Connect to it:       devvy connect")
    return 0


def cmd_vnc(args: argparse.Namespace) -> int:
    """VNC command handler. Prints how to watch the container's browser."""
    config, paths = load_context(args)
    engine = DockerEngine()
    if not engine.is_running(config.docker.container_name):
        print("Container is not running. Start it first with: devvy start")
        return 1

    port = config.docker.vnc_port
    print("VNC browser monitoring")
    print()
    print("VNC starts automatically with the container.")
    print()
    print("Connect from macOS:")
    print("  1. Open Finder")
    print("  2. Press Cmd+K (Connect to Server)")
    print(f"  3. Enter: vnc://localhost:{port}")
    print(f"  4. Password: {VNC_PASSWORD}")
    print()
    print("Or use any VNC client:")
    print("  Host:     localhost")
    print(f"  Port:     {port}")
    print(f"  Password: {VNC_PASSWORD}")
    print()
    print("Chromium shows up here when Playwright launches it.")
    return 0


def cmd_sync(args: argparse.Namespace) -> int:
    """Sync command handler."""
    _, paths = load_context(args)
    sync = EditorSync(paths.editor_config_dir)
    kind = _resolve_editor(sync, args.editor)
    display_name = get_profile(kind).display_name

    if args.export:
        report = sync.export_settings(kind)
        print(f"Exported project settings to {display_name}")
    else:
        report = sync.import_settings(kind)
        print(f"Imported {display_name} settings into {sync.project_config_dir}")

    for name in report.copied:
        print(f"  + {name}")
    for name in report.missing:
        print(f"  - {name} (not found)")
    if report.extensions is not None:
        print(f"  {report.extensions} extensions")
    for extension in report.failed_extensions:
        print(f"Warning: failed to install {extension}", file=sys.stderr)
    return 0


def _select_folder(config: AppConfig, prompter: Prompter) -> str:
    container_dir = config.user.container_projects_path
    folders = workspace_folders(expand_path(config.user.projects_path), container_dir)
    if not folders:
        print(f"No repositories found, opening {container_dir}")
        return container_dir
    if len(folders) == 1:
        print(f"Found one repository: {folders[0][0]}")
        return folders[0][1]

    root_label = "(projects directory)"
    labels = [root_label] + [label for label, _ in folders]
    choice = prompter.select("Which repository would you like to open?", labels)
    if choice == root_label:
        return container_dir
    return dict(folders)[choice]


def cmd_editor(args: argparse.Namespace) -> int:
    """Editor command handler."""
    config, paths = load_context(args)
    name = config.docker.container_name
    engine = DockerEngine()
    if not engine.is_running(name):
        raise PreconditionError(
            "Container is not running",
            remediation=["Start it first with 'devvy start'"],
        )

    kind = _resolve_editor(EditorSync(paths.editor_config_dir), args.editor)
    profile = get_profile(kind)
    if not shell.command_exists(profile.command):
        raise PreconditionError(
            f"{profile.display_name} command '{profile.command}' not found",
            remediation=[
                f"Install {profile.display_name} from {profile.install_url}",
                f"Run 'Shell Command: Install '{profile.command}' command in PATH' from the command palette",
            ],
        )

    folder = args.folder or _select_folder(config, ConsolePrompter())
    print(f"Opening {folder} in {profile.display_name}...")
    return shell.run_interactive(profile.command, ["--folder-uri", attached_container_uri(name, folder)])


def create_parser() -> argparse.ArgumentParser:
    """Create CLI argument parser.

    Returns:
        Configured ArgumentParser.
    """
    parser = argparse.ArgumentParser(
        prog="devvy",
        description="Docker development container orchestration tool",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Show progress details")
    parser.add_argument("--debug", action="store_true", help="Show debug logs and tracebacks")
    parser.add_argument(
        "--project-root",
        type=Path,
        default=None,
        help="Project root (default: $DEVVY_PROJECT_ROOT or the current directory)",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # start command
    start_parser = subparsers.add_parser("start", help="Start the development container")
    start_parser.add_argument("--build", "-b", action="store_true", help="Build the image first")
    start_parser.add_argument(
        "--detach",
        "-d",
        action=argparse.BooleanOptionalAction,
        default=True,
        help="Run in the background and wait until ready (default)",
    )
    start_parser.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="Seconds to wait for readiness",
    )
    start_parser.set_defaults(func=cmd_start)

    # stop command
    stop_parser = subparsers.add_parser("stop", help="Stop the development container")
    stop_parser.add_argument("--force", "-f", action="store_true", help="Skip confirmation")
    stop_parser.set_defaults(func=cmd_stop)

    # connect command
    connect_parser = subparsers.add_parser(
        "connect", aliases=["ssh"], help="Open a shell in the container"
    )
    connect_parser.add_argument("--mosh", "-m", action="store_true", help="Use mosh instead of ssh")
    connect_parser.add_argument("--tmux", "-t", action="store_true", help="Attach to the tmux session")
    connect_parser.add_argument(
        "--root", action="store_true", help="Open a root shell with docker exec"
    )
    connect_parser.set_defaults(func=cmd_connect)

    # rebuild command
    rebuild_parser = subparsers.add_parser("rebuild", help="Rebuild the development container")
    rebuild_parser.add_argument("--no-cache", action="store_true", help="Build without cache")
    rebuild_parser.add_argument("--force", "-f", action="store_true", help="Skip confirmations")
    rebuild_parser.set_defaults(func=cmd_rebuild)

    # status command
    status_parser = subparsers.add_parser("status", help="Show container status")
    status_parser.add_argument("--json", action="store_true", help="Print status as JSON")
    status_parser.add_argument(
        "--verbose", dest="details", action="store_true", help="Show container details"
    )
    status_parser.set_defaults(func=cmd_status)

    # logs command
    logs_parser = subparsers.add_parser("logs", help="Show container output")
    logs_parser.add_argument("--follow", "-f", action="store_true", help="Follow new output")
    logs_parser.add_argument("--tail", "-n", type=int, default=None, help="Number of lines to show")
    logs_parser.add_argument("--timestamps", action="store_true", help="Show timestamps")
    logs_parser.add_argument("--since", help="Show output since (e.g. 10m, 2h, 2024-01-31T12:00)")
    logs_parser.add_argument("--until", help="Show output until (e.g. 10m, 2h, 2024-01-31T12:00)")
    logs_parser.set_defaults(func=cmd_logs)

    # cleanup command
    cleanup_parser = subparsers.add_parser("cleanup", help="Remove devvy resources")
    cleanup_parser.add_argument("--all", "-a", action="store_true", help="Remove everything")
    cleanup_parser.add_argument(
        "--dry-run", action="store_true", help="Show what would be removed"
    )
    cleanup_parser.add_argument(
        "--force", "-f", action="store_true", help="Skip confirmation for --all"
    )
    cleanup_parser.set_defaults(func=cmd_cleanup)

    # setup command
    setup_parser = subparsers.add_parser("setup", help="Run the setup wizard")
    setup_parser.set_defaults(func=cmd_setup)

    # vnc command
    vnc_parser = subparsers.add_parser("vnc", help="Show how to connect to the container's VNC display")
    vnc_parser.set_defaults(func=cmd_vnc)

    # sync command
    sync_parser = subparsers.add_parser("sync", help="Sync editor settings")
    sync_parser.add_argument("--editor", "-e", help="Editor to sync (vscode or cursor)")
    sync_parser.add_argument(
        "--export",
        action="store_true",
        help="Write project settings back to the editor",
    )
    sync_parser.set_defaults(func=cmd_sync)

    # editor command
    editor_parser = subparsers.add_parser(
        "editor", aliases=["code"], help="Open the container in VS Code or Cursor"
    )
    editor_parser.add_argument("--editor", "-e", help="Editor to open (vscode or cursor)")
    editor_parser.add_argument("--folder", help="Folder inside the container to open")
    editor_parser.set_defaults(func=cmd_editor)

    return parser


def main(argv: list[str] | None = None) -> int:
    """CLI entry point.

    Args:
        argv: Arguments, defaults to ``sys.argv[1:]``.

    Returns:
        Exit code.
    """
    parser = create_parser()
    args = parser.parse_args(argv)

    if args.debug:
        configure_logging(logging.DEBUG)
    elif args.verbose:
        configure_logging(logging.INFO)
    else:
        configure_logging(logging.WARNING)

    if args.command is None:
        parser.print_help()
        print()
        print("Quick start:")
        print("  devvy setup      # Generate keys and configuration")
        print("  devvy start      # Start the container")
        print("  devvy connect    # Open a shell in the container")
        return 0

    try:
        return args.func(args)
    except KeyboardInterrupt:
        print(file=sys.stderr)
        return 130
    except DevvyError as e:
        if args.debug:
            logger.exception("Command failed")
        print_error(e)
        return 1
    except Exception as e:
        if args.debug:
            logger.exception("Unexpected error")
        print_error(DevvyError(str(e) or type(e).__name__, remediation=UNEXPECTED_ERROR_HINTS))
        return 1


if __name__ == "__main__":
    sys.exit(main())
