"""Main CLI for polyflow."""

import asyncio
from pathlib import Path

import click
import yaml
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from .. import __version__
from ..core.config import CONFIG_FILENAME, DEFAULT_CONFIG_TEMPLATE, load_config
from ..llm import BackendFactory, create_backend
from ..llm.base import BackendError
from ..utils.atomic_io import atomic_write_text
from ..utils.rich_logging import setup_logging
from ..workflow.dag import group_by_depth
from ..workflow.errors import WorkflowError
from ..workflow.loader import LOCAL_WORKFLOWS_DIR, find_workflow, list_workflows, load_workflow
from ..workflow.report import format_results
from ..workflow.runner import WorkflowRunner
from ..workflow.templates import validate_templates


console = Console()

EXAMPLE_WORKFLOW = """\
name = "example"
description = "List recent commits and summarize them"

[[steps]]
name = "log"
shell = "git log --oneline -n 20"

[[steps]]
name = "summary"
backend = "claude"
depends_on = ["log"]
prompt = \"\"\"
Summarize what changed recently in this project:

{{ steps.log.output }}
\"\"\"
"""


@click.group()
@click.option("--config", "-c", "config_path", type=click.Path(path_type=Path), help="Config file")
@click.option("--verbose", "-v", is_flag=True, help="Debug logging")
@click.version_option(__version__, prog_name="polyflow")
@click.pass_context
def cli(ctx, config_path, verbose):
    """polyflow - run multi-backend workflows over your codebase."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path
    setup_logging("DEBUG" if verbose else "INFO")


def _load_config(ctx):
    try:
        return load_config(ctx.obj.get("config_path"))
    except (OSError, ValueError, yaml.YAMLError) as e:
        console.print(f"[red]Invalid configuration: {escape(str(e))}[/]")
        ctx.exit(1)


def _run_workflow(ctx, name, args, directory, output):
    config = _load_config(ctx)
    working_dir = Path(directory).resolve()

    try:
        workflow = load_workflow(find_workflow(name, cwd=working_dir), cwd=working_dir)
        console.print(f"[bold]Running workflow:[/] [cyan]{workflow.name}[/]")
        runner = WorkflowRunner(
            BackendFactory(config), working_dir, args=list(args), parallel=config.defaults.parallel
        )
        results = asyncio.run(runner.run(workflow))
    except WorkflowError as e:
        console.print(f"[red]Error: {escape(str(e))}[/]")
        ctx.exit(1)

    report = format_results(results)
    if output:
        output_path = Path(output)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        atomic_write_text(output_path, report)
        console.print(f"[green]✓ Results written to {output_path}[/]")
    else:
        console.print(report, markup=False, highlight=False, soft_wrap=True, end="")

    failed = [r.name for r in results if not r.success]
    if failed:
        console.print(f"[red]{len(failed)} step(s) failed: {', '.join(failed)}[/]")
        ctx.exit(1)


_run_options = [
    click.argument("name"),
    click.argument("args", nargs=-1),
    click.option("--dir", "-d", "directory", default=".", type=click.Path(file_okay=False, exists=True),
                 help="Working directory for steps"),
    click.option("--output", "-o", type=click.Path(dir_okay=False), help="Write the report to a file"),
]


def run_options(func):
    for option in reversed(_run_options):
        func = option(func)
    return func


@cli.command()
@run_options
@click.pass_context
def run(ctx, name, args, directory, output):
    """Run workflow NAME with positional ARGS (shorthand for 'workflow run')."""
    _run_workflow(ctx, name, args, directory, output)


@cli.group()
def workflow():
    """Run, list and validate workflows."""


@workflow.command("run")
@run_options
@click.pass_context
def workflow_run(ctx, name, args, directory, output):
    """Run workflow NAME with positional ARGS."""
    _run_workflow(ctx, name, args, directory, output)


@workflow.command("list")
def workflow_list():
    """List available workflows."""
    found = list_workflows()
    if not found:
        console.print("[yellow]No workflows found[/]")
        return

    table = Table()
    table.add_column("Name")
    table.add_column("Steps", justify="right")
    table.add_column("Description")
    table.add_column("Path")

    for path, wf in found:
        table.add_row(wf.name, str(len(wf.steps)), wf.description, str(path))

    console.print(table)


@workflow.command("validate")
@click.argument("name")
@click.pass_context
def workflow_validate(ctx, name):
    """Check that workflow NAME loads and its graph and templates are valid."""
    try:
        path = find_workflow(name)
        wf = load_workflow(path)
        levels = group_by_depth(wf)
        validate_templates(wf)
    except WorkflowError as e:
        console.print(f"[red]✗ {escape(str(e))}[/]")
        ctx.exit(1)

    console.print(f"[green]✓ {wf.name}[/] ({path}): {len(wf.steps)} steps")
    for depth, names in enumerate(levels):
        console.print(f"  depth {depth}: {', '.join(names)}")


@cli.command()
@click.pass_context
def backends(ctx):
    """Show configured backends and whether they are usable."""
    config = _load_config(ctx)

    table = Table()
    table.add_column("Backend")
    table.add_column("Enabled")
    table.add_column("Target")
    table.add_column("Status")

    for name, backend_config in sorted(config.backends.items()):
        target = backend_config.command or backend_config.endpoint or "API"
        if not backend_config.enabled:
            table.add_row(name, "no", target, "[dim]disabled[/]")
            continue
        try:
            backend = create_backend(name, backend_config, config.backend_timeout(name))
            status = "[green]available[/]" if backend.is_available() else "[red]not available[/]"
        except BackendError as e:
            status = f"[red]{escape(str(e))}[/]"
        table.add_row(name, "yes", target, status)

    console.print(table)


@cli.command()
@click.option("--force", is_flag=True, help="Overwrite existing files")
def init(force):
    """Create a config file and an example workflow in the current directory."""
    console.print("[bold green]Initializing polyflow...[/]")

    config_file = Path(CONFIG_FILENAME)
    if config_file.exists() and not force:
        console.print(f"  {config_file} already exists, skipping")
    else:
        atomic_write_text(config_file, DEFAULT_CONFIG_TEMPLATE)
        console.print(f"  Created {config_file}")

    workflows_dir = LOCAL_WORKFLOWS_DIR
    workflows_dir.mkdir(parents=True, exist_ok=True)
    example = workflows_dir / "example.toml"
    if example.exists() and not force:
        console.print(f"  {example} already exists, skipping")
    else:
        atomic_write_text(example, EXAMPLE_WORKFLOW)
        console.print(f"  Created {example}")

    console.print("[green]✓ Initialization complete![/]")
    console.print("\nNext steps:")
    console.print(f"1. Edit {config_file} to enable the backends you have installed")
    console.print("2. Run 'polyflow workflow list' to see available workflows")
    console.print("3. Run 'polyflow run example'")


if __name__ == "__main__":
    cli()
