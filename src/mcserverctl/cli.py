"""Typer-powered command line interface for ``mcserverctl``.

Each command maps onto a :class:`~mcserverctl.lifecycle.ServerManager`
operation. Commands are wrapped in a structured operation scope so the
operations log records what ran, which steps were taken, and how it ended.
"""
from __future__ import annotations

import logging
import re
import textwrap
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import NoReturn

import typer
from packaging.version import InvalidVersion, Version
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from . import __version__
from .config import AppConfig, load_config
from .errors import ExitCode, ServerManagerError, UserCancelled
from .lifecycle import DEFAULT_MEMORY, DEFAULT_PORT, DEFAULT_VERSION, ServerManager
from .logging import OperationScope, StructuredLogger
from .models import ServerState, ServerType, validate_server_name
from .providers import DockerProvider, RuntimeInstaller, select_installer
from .state import ServerRegistry

console = Console()
err_console = Console(stderr=True)

DEFAULT_JAVA_ARGS = "-XX:+UseG1GC -XX:+ParallelRefProcEnabled -XX:MaxGCPauseMillis=200"
EULA_URL = "https://aka.ms/MinecraftEULA"
VERSION_SENTINELS = ("LATEST", "SNAPSHOT")
SNAPSHOT_PATTERN = re.compile(r"\d{2}w\d{2}[a-z]")
MEMORY_PATTERN = re.compile(r"[1-9]\d*[KMG]?", re.IGNORECASE)
RUNTIME_CHECK_EXEMPT = frozenset({"versions"})

CONFIG_FILE_OPTION = typer.Option(
    None,
    "--config-file",
    dir_okay=False,
    help="Override the path to mcserverctl's YAML config file.",
)

CONFIG_DIR_OPTION = typer.Option(
    None,
    "--config-dir",
    file_okay=False,
    help="Directory holding the registry, backups, and server data (default: .mc-servers).",
)

START_OPTION = typer.Option(
    None,
    "--start/--no-start",
    help="Start the server afterwards (prompted when omitted).",
)

app = typer.Typer(
    add_completion=False,
    help=textwrap.dedent(
        """
        Minecraft server manager.

        Create, run, back up, and restore containerised Minecraft servers.
        Each server gets its own data directory and compose descriptor; the
        registry records which servers exist.
        """
    ).strip(),
)


@dataclass
class RuntimeContext:
    """Aggregated runtime objects shared by commands."""

    config: AppConfig
    registry: ServerRegistry
    gateway: DockerProvider
    installer: RuntimeInstaller
    manager: ServerManager
    logger: StructuredLogger


def _configure_logging(verbose: bool) -> None:
    if not verbose:
        return
    logging.basicConfig(
        level=logging.DEBUG,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, rich_tracebacks=True, show_path=False)],
        force=True,
    )


def _ensure_runtime(
    ctx: typer.Context,
    config_file: Path | None,
    config_dir: Path | None = None,
) -> RuntimeContext:
    runtime = ctx.obj
    if isinstance(runtime, RuntimeContext):
        return runtime

    overrides: dict[str, object] = {}
    if config_dir is not None:
        overrides["config_dir"] = str(config_dir)

    config = load_config(config_file=config_file, overrides=overrides)
    registry = ServerRegistry(config.registry_file)
    gateway = DockerProvider(
        docker_bin=config.runtime.docker_bin,
        compose_bin=config.runtime.compose_bin,
        tar_bin=config.runtime.tar_bin,
    )
    manager = ServerManager(config=config, registry=registry, gateway=gateway)
    manager.ensure_layout()
    logger = StructuredLogger(config.logs_dir)
    runtime = RuntimeContext(
        config=config,
        registry=registry,
        gateway=gateway,
        installer=select_installer(),
        manager=manager,
        logger=logger,
    )
    ctx.obj = runtime
    return runtime


def _get_runtime(ctx: typer.Context) -> RuntimeContext:
    runtime = ctx.obj
    if isinstance(runtime, RuntimeContext):
        return runtime
    return _ensure_runtime(ctx, None)


def _command_error(
    op: OperationScope,
    message: str,
    *,
    rc: int = ExitCode.VALIDATION,
    errors: Sequence[str] | None = None,
) -> NoReturn:
    """Emit a structured error and terminate the command."""
    console.print(f"[red]{escape(message)}[/red]")
    op.error(message, errors=list(errors or [message]), rc=int(rc))
    raise typer.Exit(code=int(rc))


def _handle_failure(op: OperationScope, exc: ServerManagerError) -> NoReturn:
    """Translate an orchestrator failure into output, a log record, and an exit code."""
    if isinstance(exc, UserCancelled):
        console.print(f"[yellow]{escape(str(exc))}[/yellow]")
        op.success(str(exc), changed=0, context={"cancelled": True})
        raise typer.Exit(code=int(ExitCode.OK))
    _command_error(op, str(exc), rc=exc.exit_code)


def _server_target(name: str | None) -> dict[str, object]:
    if name is None:
        return {"kind": "server", "scope": "all"}
    return {"kind": "server", "name": name}


@app.callback(invoke_without_command=True)
def _root(  # noqa: D401 - Typer displays help for us, docstring optional.
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        help="Show the mcserverctl version and exit.",
    ),
    config_file: Path | None = CONFIG_FILE_OPTION,
    config_dir: Path | None = CONFIG_DIR_OPTION,
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Emit diagnostic logging to stderr.",
    ),
    skip_runtime_check: bool = typer.Option(
        False,
        "--skip-runtime-check",
        help="Do not check for (or offer to install) the container runtime.",
    ),
) -> None:
    """Entry point callback invoked for every CLI execution."""
    _configure_logging(verbose)
    if version:
        console.print(f"mcserverctl {__version__}")
        raise typer.Exit(code=0)

    try:
        runtime = _ensure_runtime(ctx, config_file, config_dir)
    except ServerManagerError as exc:
        err_console.print(f"[red]{escape(str(exc))}[/red]")
        raise typer.Exit(code=int(exc.exit_code)) from exc

    if not skip_runtime_check and ctx.invoked_subcommand not in RUNTIME_CHECK_EXEMPT:
        _check_container_runtime(runtime)

    if ctx.invoked_subcommand is None:
        console.print("[bold green]Minecraft Server Manager[/bold green]")
        _render_server_list(runtime)


def _check_container_runtime(runtime: RuntimeContext) -> None:
    if runtime.gateway.is_available():
        return
    with runtime.logger.operation(
        "runtime install",
        args={"installer": runtime.installer.label},
        target={"kind": "runtime", "name": runtime.config.runtime.docker_bin},
    ) as op:
        console.print("[yellow]Docker is not installed.[/yellow]")
        try:
            runtime.manager.ensure_runtime(
                runtime.installer,
                confirm=lambda prompt: typer.confirm(prompt, default=False),
                notify=console.print,
            )
        except ServerManagerError as exc:
            _handle_failure(op, exc)
        op.add_step("runtime.install", detail=runtime.installer.label)
        console.print("[green]Docker installation finished.[/green]")
        op.success("Container runtime installed.", changed=1)


# ----------------------------------------------------------------------
# Input validation helpers
# ----------------------------------------------------------------------
def _parse_server_type(value: str) -> ServerType:
    try:
        return ServerType(value.strip().upper())
    except ValueError:
        choices = ", ".join(member.value.lower() for member in ServerType)
        raise ValueError(f"Unknown server type '{value}' (choose from: {choices}).") from None


def _validate_game_version(value: str) -> str:
    text = value.strip()
    if text.upper() in VERSION_SENTINELS:
        return text.upper()
    if SNAPSHOT_PATTERN.fullmatch(text):
        return text
    try:
        Version(text)
    except InvalidVersion:
        raise ValueError(
            f"Invalid Minecraft version '{value}' (use LATEST, SNAPSHOT, or e.g. 1.20.2)."
        ) from None
    return text


def _validate_memory(value: str) -> str:
    text = value.strip()
    if not MEMORY_PATTERN.fullmatch(text):
        raise ValueError(f"Invalid memory size '{value}' (use e.g. 2G or 1024M).")
    return text.upper()


def _validate_port(value: str | int) -> str:
    try:
        port = int(str(value).strip())
    except ValueError:
        raise ValueError(f"Invalid port '{value}'.") from None
    if not 1 <= port <= 65535:
        raise ValueError(f"Port {port} is outside the range 1-65535.")
    return str(port)


# ----------------------------------------------------------------------
# Commands
# ----------------------------------------------------------------------
@app.command("create")
def create_command(
    ctx: typer.Context,
    name: str | None = typer.Argument(None, help="Name of the server to create."),
    server_type: str | None = typer.Option(
        None,
        "--type",
        help="Server type: vanilla, paper, forge, fabric, spigot, or purpur.",
    ),
    version: str | None = typer.Option(
        None,
        "--version",
        help="Minecraft version (LATEST, SNAPSHOT, or a release such as 1.20.2).",
    ),
    memory: str | None = typer.Option(None, "--memory", help="Memory allocation, e.g. 2G."),
    port: str | None = typer.Option(None, "--port", help="Host port to publish."),
    java_args: str | None = typer.Option(
        None,
        "--java-args",
        help="Extra JVM options passed to the server.",
    ),
    loader_version: str | None = typer.Option(
        None,
        "--loader-version",
        help="Forge/Fabric loader version (Forge and Fabric only).",
    ),
    accept_eula: bool = typer.Option(
        False,
        "--accept-eula",
        help=f"Accept the Minecraft EULA ({EULA_URL}) without prompting.",
    ),
    start: bool | None = START_OPTION,
) -> None:
    """Create a new server, prompting for any value not given as an option."""
    runtime = _get_runtime(ctx)
    with runtime.logger.operation(
        "create",
        args={
            "name": name,
            "type": server_type,
            "version": version,
            "memory": memory,
            "port": port,
            "java_args": java_args,
            "loader_version": loader_version,
            "accept_eula": accept_eula,
            "start": start,
        },
        target=_server_target(name),
    ) as op:
        try:
            name = validate_server_name(name or typer.prompt("Server name"))
            if name in runtime.registry.load():
                _command_error(op, f"Server '{name}' already exists")

            kind = _parse_server_type(
                server_type
                or typer.prompt("Server type", default=ServerType.VANILLA.value.lower())
            )
            game_version = _validate_game_version(
                version or typer.prompt("Minecraft version", default=DEFAULT_VERSION)
            )
            loader = kind.mod_loader
            if loader is None:
                if loader_version:
                    console.print(
                        "[yellow]Ignoring --loader-version for "
                        f"{kind.value.lower()} servers.[/yellow]"
                    )
                    op.add_step("loader.ignored", status="warning", detail=loader_version)
                loader_version = None
            elif not loader_version:
                loader_version = typer.prompt(
                    f"{loader.value.capitalize()} version",
                    default=loader.default_version,
                )
            memory = _validate_memory(
                memory or typer.prompt("Memory allocation", default=DEFAULT_MEMORY)
            )
            port = _validate_port(port or typer.prompt("Server port", default=DEFAULT_PORT))
            if java_args is None and typer.confirm(
                "Would you like to customize Java arguments?", default=False
            ):
                java_args = typer.prompt("Java arguments", default=DEFAULT_JAVA_ARGS)
        except ValueError as exc:
            _command_error(op, str(exc))
        except ServerManagerError as exc:
            _handle_failure(op, exc)

        if not accept_eula and not typer.confirm(
            f"Do you accept the Minecraft EULA ({EULA_URL})?", default=False
        ):
            _handle_failure(op, UserCancelled("EULA not accepted; server not created."))
        op.add_step("eula.accepted")

        try:
            info = runtime.manager.create(
                name,
                server_type=kind,
                version=game_version,
                port=port,
                memory=memory,
                mod_loader_version=loader_version,
                java_args=java_args,
            )
        except ServerManagerError as exc:
            _handle_failure(op, exc)
        op.add_step("descriptor.write", detail=info.data_path)
        op.add_step("registry.save", detail=name)
        console.print(f"[green]Server '{name}' created at {info.data_path}.[/green]")

        if start is None:
            start = typer.confirm("Start server now?", default=True)
        if not start:
            op.success("Server created.", changed=2, context={"data_path": info.data_path})
            return

        try:
            runtime.manager.start(name)
        except ServerManagerError as exc:
            _handle_failure(op, exc)
        op.add_step("compose.up", detail=name)
        console.print(f"[green]Server '{name}' started.[/green]")
        op.success(
            "Server created and started.",
            changed=3,
            context={"data_path": info.data_path},
        )


def _render_server_list(runtime: RuntimeContext) -> None:
    with runtime.logger.operation(
        "list",
        args={},
        target={"kind": "server", "scope": "registry"},
    ) as op:
        try:
            summaries = runtime.manager.list_servers()
        except ServerManagerError as exc:
            _handle_failure(op, exc)

        if not summaries:
            console.print("No servers configured. Use 'mcserverctl create' to add one.")
            op.success("Reported empty server list.", changed=0)
            return

        table = Table(show_header=True, header_style="bold magenta")
        table.add_column("Name", style="bold")
        table.add_column("Type")
        table.add_column("Version")
        table.add_column("Port")
        table.add_column("Memory")
        table.add_column("Status")
        for summary in summaries:
            info = summary.info
            version = info.version
            if info.mod_loader is not None and info.mod_loader_version:
                version = f"{version} ({info.mod_loader.value.lower()} {info.mod_loader_version})"
            if not summary.data_present:
                status = "[yellow]MISSING DATA[/yellow]"
            elif summary.state is ServerState.RUNNING:
                status = "[green]RUNNING[/green]"
            else:
                status = "[red]STOPPED[/red]"
            table.add_row(
                summary.name,
                info.server_type.value,
                version,
                info.port,
                info.memory,
                status,
            )
        console.print(table)
        op.success("Reported server list.", changed=0, context={"count": len(summaries)})


@app.command("list")
def list_command(ctx: typer.Context) -> None:
    """List configured servers and whether they are running."""
    _render_server_list(_get_runtime(ctx))


@app.command("start")
def start_command(
    ctx: typer.Context,
    name: str | None = typer.Argument(
        None,
        help="Server to start (omit to start every server).",
    ),
) -> None:
    """Start one server, or all registered servers."""
    runtime = _get_runtime(ctx)
    with runtime.logger.operation("start", args={"name": name}, target=_server_target(name)) as op:

        def _started(server: str) -> None:
            op.add_step("compose.up", detail=server)
            console.print(f"[green]Server '{server}' started.[/green]")

        try:
            started = runtime.manager.start(name, progress=_started)
        except ServerManagerError as exc:
            _handle_failure(op, exc)
        if not started:
            console.print("No servers configured.")
        op.success("Servers started.", changed=len(started), context={"servers": started})


@app.command("stop")
def stop_command(
    ctx: typer.Context,
    name: str | None = typer.Argument(
        None,
        help="Server to stop (omit to stop every server).",
    ),
) -> None:
    """Stop one server, or all registered servers."""
    runtime = _get_runtime(ctx)
    with runtime.logger.operation("stop", args={"name": name}, target=_server_target(name)) as op:

        def _stopped(server: str) -> None:
            op.add_step("compose.down", detail=server)
            console.print(f"[green]Server '{server}' stopped.[/green]")

        try:
            stopped = runtime.manager.stop(name, progress=_stopped)
        except ServerManagerError as exc:
            _handle_failure(op, exc)
        if not stopped:
            console.print("No servers configured.")
        op.success("Servers stopped.", changed=len(stopped), context={"servers": stopped})


@app.command("status")
def status_command(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Server to query."),
) -> None:
    """Report whether a server's container is running."""
    runtime = _get_runtime(ctx)
    with runtime.logger.operation("status", args={"name": name}, target=_server_target(name)) as op:
        try:
            state = runtime.manager.status(name)
        except ServerManagerError as exc:
            _handle_failure(op, exc)
        colour = "green" if state is ServerState.RUNNING else "red"
        console.print(f"{name}: [{colour}]{state.value}[/{colour}]")
        op.success("Reported server status.", changed=0, context={"state": state.value})


@app.command("logs")
def logs_command(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Server whose logs to show."),
    follow: bool = typer.Option(False, "--follow", "-f", help="Keep streaming new output."),
) -> None:
    """Show server logs."""
    runtime = _get_runtime(ctx)
    with runtime.logger.operation(
        "logs",
        args={"name": name, "follow": follow},
        target=_server_target(name),
    ) as op:
        try:
            runtime.manager.logs(name, follow=follow)
        except ServerManagerError as exc:
            _handle_failure(op, exc)
        except KeyboardInterrupt:
            op.add_step("compose.logs", status="interrupted")
        op.success("Streamed server logs.", changed=0)


@app.command("console")
def console_command(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Server whose console to attach."),
) -> None:
    """Attach to a server console (detach with Ctrl-P Ctrl-Q)."""
    runtime = _get_runtime(ctx)
    with runtime.logger.operation(
        "console",
        args={"name": name},
        target=_server_target(name),
    ) as op:
        console.print(f"Attaching to '{name}'. Detach with Ctrl-P Ctrl-Q.")
        try:
            runtime.manager.console(name)
        except ServerManagerError as exc:
            _handle_failure(op, exc)
        except KeyboardInterrupt:
            op.add_step("docker.attach", status="interrupted")
        op.success("Console session ended.", changed=0)


@app.command("remove")
def remove_command(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Server to remove."),
    force: bool = typer.Option(False, "--force", "-f", help="Skip the confirmation prompt."),
) -> None:
    """Stop a server and delete it together with all of its data."""
    runtime = _get_runtime(ctx)
    with runtime.logger.operation(
        "remove",
        args={"name": name, "force": force},
        target=_server_target(name),
    ) as op:
        try:
            result = runtime.manager.remove(
                name,
                force=force,
                confirm=lambda prompt: typer.confirm(prompt, default=False),
            )
        except ServerManagerError as exc:
            _handle_failure(op, exc)

        if not result.removed:
            console.print("Removal cancelled.")
            op.success("Removal cancelled.", changed=0, context={"cancelled": True})
            return

        warnings: list[str] = []
        if result.stop_error:
            op.add_step("compose.down", status="warning", detail=result.stop_error)
            console.print(f"[yellow]Could not stop server: {escape(result.stop_error)}[/yellow]")
            warnings.append(result.stop_error)
        if result.data_missing:
            op.add_step("filesystem.remove", status="skipped", detail="data directory missing")
        else:
            op.add_step("filesystem.remove")
        op.add_step("registry.save", detail=name)
        console.print(f"[green]Server '{name}' removed.[/green]")
        if warnings:
            op.warning("Server removed with warnings.", warnings=warnings, changed=2)
        else:
            op.success("Server removed.", changed=2)


@app.command("versions")
def versions_command(ctx: typer.Context) -> None:
    """Show supported server types and version formats."""
    runtime = _get_runtime(ctx)
    with runtime.logger.operation("versions", args={}, target={"kind": "meta"}) as op:
        table = Table(show_header=True, header_style="bold magenta", title="Server types")
        table.add_column("Type", style="bold")
        table.add_column("Mod loader")
        for kind in ServerType:
            loader = kind.mod_loader
            table.add_row(
                kind.value.lower(),
                f"{loader.value.lower()} (default {loader.default_version})" if loader else "",
            )
        console.print(table)
        console.print("Version formats:")
        console.print("  LATEST    newest stable release")
        console.print("  SNAPSHOT  newest development snapshot")
        console.print("  1.20.2    a specific release")
        op.success("Reported supported versions.", changed=0)


@app.command("backup")
def backup_command(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Server to back up."),
) -> None:
    """Archive a server's data directory."""
    runtime = _get_runtime(ctx)
    with runtime.logger.operation("backup", args={"name": name}, target=_server_target(name)) as op:
        try:
            archive = runtime.manager.backup(name)
        except ServerManagerError as exc:
            _handle_failure(op, exc)
        op.add_step("archive.create", detail=str(archive))
        console.print(f"[green]Backup created: {archive}[/green]")
        op.success("Backup created.", changed=1, backups=[str(archive)])


@app.command("restore")
def restore_command(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Server to restore into."),
    backup_file: Path = typer.Argument(..., help="Backup archive to extract."),
    start: bool | None = START_OPTION,
) -> None:
    """Restore a server's data directory from a backup archive."""
    runtime = _get_runtime(ctx)
    with runtime.logger.operation(
        "restore",
        args={"name": name, "backup_file": str(backup_file), "start": start},
        target=_server_target(name),
    ) as op:
        try:
            result = runtime.manager.restore(name, backup_file)
        except ServerManagerError as exc:
            _handle_failure(op, exc)

        warnings: list[str] = []
        if result.stop_error:
            op.add_step("compose.down", status="warning", detail=result.stop_error)
            console.print(f"[yellow]Could not stop server: {escape(result.stop_error)}[/yellow]")
            warnings.append(result.stop_error)
        op.add_step("archive.extract", detail=str(result.archive))
        console.print(f"[green]Server '{name}' restored from {result.archive}.[/green]")

        if start is None:
            start = typer.confirm("Start server now?", default=True)
        changed = 1
        if start:
            try:
                runtime.manager.start(name)
            except ServerManagerError as exc:
                _handle_failure(op, exc)
            op.add_step("compose.up", detail=name)
            console.print(f"[green]Server '{name}' started.[/green]")
            changed += 1

        context: Mapping[str, object] = {"archive": str(result.archive)}
        if warnings:
            op.warning(
                "Server restored with warnings.",
                warnings=warnings,
                changed=changed,
                context=context,
            )
        else:
            op.success("Server restored.", changed=changed, context=context)


def main() -> None:
    """Console script entry point."""
    app()


__all__ = ["app", "main"]
