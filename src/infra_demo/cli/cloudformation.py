"""
CloudFormation CLI commands.
"""

import json
import sys
from typing import Optional

import click

from ..cloudformation import StackManager
from ..config import get_project_config
from .deploy import environment_option, project_option


@click.command()
@project_option
@environment_option
@click.option("--all", "list_all", is_flag=True, help="List every stack of the project")
@click.option("--profile", help="AWS profile to use")
def status(project: str, environment: Optional[str], list_all: bool, profile: Optional[str]) -> None:
    """Show CloudFormation stack status."""
    try:
        config = get_project_config(project)
        manager = StackManager(region=config.aws_region, profile=profile)

        if list_all:
            stacks = manager.list_stacks(project_name=config.name)
            if not stacks:
                click.echo("No stacks found")
                return

            click.echo(f"CloudFormation Stacks for {config.name}:")
            click.echo("-" * 80)
            for stack in stacks:
                status_color = (
                    "green"
                    if "COMPLETE" in stack["status"]
                    and "ROLLBACK" not in stack["status"]
                    else "red" if "FAILED" in stack["status"] else "yellow"
                )
                click.echo(
                    f"{stack['name']:<40} {click.style(stack['status'], fg=status_color)}"
                )
            return

        stack_name = config.get_stack_name(environment or config.default_environment)
        stack_status = manager.get_stack_status(stack_name)
        if not stack_status:
            click.echo(f"Stack {stack_name} does not exist")
            return

        click.echo(f"Stack: {stack_name}")
        click.echo(f"Status: {stack_status}")

        if "FAILED" in stack_status or "ROLLBACK" in stack_status:
            diagnosis = manager.diagnose_stack_failure(stack_name)
            for resource in diagnosis["failed_resources"]:
                click.echo(f"  ❌ {resource['logical_id']}: {resource['reason']}")
            for recommendation in diagnosis["recommendations"]:
                click.echo(f"  💡 {recommendation}")

    except Exception as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


@click.command()
@project_option
@environment_option
@click.option("--output-key", "-o", help="Print a single output value")
@click.option("--json", "output_json", is_flag=True, help="Output as JSON")
@click.option("--profile", help="AWS profile to use")
def outputs(project: str, environment: Optional[str], output_key: Optional[str],
            output_json: bool, profile: Optional[str]) -> None:
    """Show the stack outputs (load balancer DNS, distribution, bucket)."""
    try:
        config = get_project_config(project)
        manager = StackManager(region=config.aws_region, profile=profile)
        stack_name = config.get_stack_name(environment or config.default_environment)

        if output_key:
            values = manager.get_stack_outputs(stack_name)
            if output_key not in values:
                click.echo(f"Output '{output_key}' not found in stack {stack_name}", err=True)
                sys.exit(1)
            click.echo(values[output_key])
        elif output_json:
            click.echo(json.dumps(manager.get_stack_outputs(stack_name), indent=2))
        else:
            click.echo(manager.get_all_outputs_formatted(stack_name))

    except Exception as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
