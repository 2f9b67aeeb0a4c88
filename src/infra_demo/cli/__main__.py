#!/usr/bin/env python3
"""Main CLI entry point for the demo stack."""

import os

import click

from .cloudformation import outputs, status
from .deploy import deploy, destroy, synth


@click.group()
@click.version_option(package_name="docker-infra-demo")
def cli() -> None:
    """Build, deploy and inspect the containerized demo application.

    The backend image is built from a Docker context, pushed to ECR and run on
    ECS Fargate behind an application load balancer; an optional static
    frontend is served from S3 through CloudFront.
    """
    pass


cli.add_command(synth)
cli.add_command(deploy)
cli.add_command(destroy)
cli.add_command(status)
cli.add_command(outputs)


@cli.command()
@click.option("--host", default="0.0.0.0", show_default=True, help="Bind address")
@click.option("--port", type=int, help="Port (defaults to $PORT or 4000)")
@click.option("--reload", is_flag=True, help="Reload on code changes")
def serve(host: str, port: int, reload: bool) -> None:
    """Run the sample backend locally."""
    import uvicorn

    uvicorn.run(
        "infra_demo.backend.app:app",
        host=host,
        port=port or int(os.environ.get("PORT", "4000")),
        reload=reload,
    )


if __name__ == "__main__":
    cli()
