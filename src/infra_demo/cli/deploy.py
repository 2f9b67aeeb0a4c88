"""
Deployment CLI commands.
"""

import sys
from typing import Dict, Optional, Tuple

import click

from ..config import get_project_config
from ..deployment import InfrastructureDeployer
from ..patterns import ContainerAppPattern


def _parse_pairs(values: Tuple[str, ...]) -> Dict[str, str]:
    pairs: Dict[str, str] = {}
    for item in values:
        if "=" in item:
            key, value = item.split("=", 1)
            pairs[key] = value
    return pairs


def _print_result(result) -> None:
    if result.success:
        click.echo(f"✅ {result.message}")
        if result.outputs:
            click.echo("\nOutputs:")
            for key, value in result.outputs.items():
                click.echo(f"  {key}: {value}")
        return

    click.echo(f"❌ {result.message}", err=True)
    if result.errors:
        click.echo("\nErrors:", err=True)
        for error in result.errors:
            click.echo(f"  - {error}", err=True)
    sys.exit(1)


project_option = click.option(
    "--project", "-p", envvar="PROJECT_NAME", default="docker-infra-demo",
    show_default=True, help="Project name"
)
environment_option = click.option(
    "--environment", "-e", help="Environment (defaults to the project's default environment)"
)


@click.command()
@project_option
@environment_option
@click.option("--backend-path", type=click.Path(exists=True, file_okay=False), help="Docker build context")
@click.option("--frontend-path", type=click.Path(exists=True, file_okay=False), help="Frontend build output")
@click.option("--output", "-o", help="Output file path (defaults to stdout)")
@click.option(
    "--format",
    "-f",
    type=click.Choice(["yaml", "json"]),
    default="yaml",
    help="Output format",
)
def synth(project: str, environment: Optional[str], backend_path: Optional[str],
          frontend_path: Optional[str], output: Optional[str], format: str) -> None:
    """Generate the CloudFormation template."""
    try:
        config = get_project_config(project)
        pattern = ContainerAppPattern(
            config,
            environment or config.default_environment,
            backend_path=backend_path,
            frontend_path=frontend_path,
        )

        output_text = pattern.to_yaml() if format == "yaml" else pattern.to_json()

        if output:
            with open(output, "w") as f:
                f.write(output_text)
            click.echo(f"✅ Template generated: {output}")
            for action in pattern.build_actions:
                click.echo(f"  image {action.name}: {action.image.content_hash[:12]}")
        else:
            click.echo(output_text)

    except Exception as e:
        click.echo(f"Error generating template: {e}", err=True)
        sys.exit(1)


@click.command()
@project_option
@environment_option
@click.option("--backend-path", type=click.Path(exists=True, file_okay=False), help="Docker build context")
@click.option("--frontend-path", type=click.Path(exists=True, file_okay=False), help="Frontend build output")
@click.option("--tag", "-T", multiple=True, help="Tags (key=value)")
@click.option("--profile", help="AWS profile to use")
@click.option("--dry-run", is_flag=True, help="Save the template and show what would be deployed")
def deploy(project: str, environment: Optional[str], backend_path: Optional[str],
           frontend_path: Optional[str], tag: Tuple[str, ...], profile: Optional[str],
           dry_run: bool) -> None:
    """Build images, deploy the stack and upload static files."""
    try:
        config = get_project_config(project)
        deployer = InfrastructureDeployer(
            project_name=project,
            environment=environment or config.default_environment,
            backend_path=backend_path,
            frontend_path=frontend_path,
            tags=_parse_pairs(tag),
            config=config,
            profile=profile,
            dry_run=dry_run,
        )

        result = deployer.execute()

    except Exception as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    _print_result(result)


@click.command()
@project_option
@environment_option
@click.option("--profile", help="AWS profile to use")
@click.option("--force", is_flag=True, help="Retry a stack in DELETE_FAILED state")
@click.option("--dry-run", is_flag=True, help="Show what would be deleted")
@click.confirmation_option(prompt="Delete the stack and everything in its buckets?")
def destroy(project: str, environment: Optional[str], profile: Optional[str],
            force: bool, dry_run: bool) -> None:
    """Empty the stack's buckets and delete the stack."""
    try:
        config = get_project_config(project)
        deployer = InfrastructureDeployer(
            project_name=project,
            environment=environment or config.default_environment,
            config=config,
            profile=profile,
            dry_run=dry_run,
        )
        result = deployer.destroy(force=force)

    except Exception as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    _print_result(result)
