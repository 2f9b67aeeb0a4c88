"""
Infrastructure deployment using CloudFormation.
"""

from pathlib import Path
from typing import Dict, Optional, Union

from ..cloudformation.stack_manager import StackManager
from ..patterns.container_app import ContainerAppPattern
from .base_deployer import BaseDeployer, DeploymentResult, DeploymentStatus
from .images import ImagePusher
from .static_files import StaticFileUploader

# Working directory for generated artifacts, excluded from image hashes
OUTPUT_DIR = Path(".infra-demo")

CAPABILITIES = ["CAPABILITY_IAM", "CAPABILITY_NAMED_IAM", "CAPABILITY_AUTO_EXPAND"]


class InfrastructureDeployer(BaseDeployer):
    """Deploy the application stack: images, template, then static files."""

    def __init__(
        self,
        project_name: str,
        environment: str,
        backend_path: Optional[Union[str, Path]] = None,
        frontend_path: Optional[Union[str, Path]] = None,
        tags: Optional[Dict[str, str]] = None,
        template_output: Optional[Union[str, Path]] = None,
        **kwargs
    ):
        """
        Initialize infrastructure deployer.

        Args:
            project_name: Name of the project
            environment: Deployment environment
            backend_path: Docker build context (config default if not provided)
            frontend_path: Frontend build output (config default if not provided)
            tags: Tags to apply to stack
            template_output: Where a dry run saves the generated template
            **kwargs: Additional arguments for BaseDeployer
        """
        super().__init__(project_name, environment, **kwargs)
        self.backend_path = backend_path
        self.frontend_path = frontend_path
        self.template_output = Path(
            template_output or OUTPUT_DIR / f"generated-template-{environment}.yaml"
        )
        self.tags = dict(tags or {})
        self.pattern: Optional[ContainerAppPattern] = None

        # Add default tags
        self.tags.update({
            "Project": self.project_name,
            "Environment": self.environment,
            "ManagedBy": "infra-demo"
        })

    def _child_kwargs(self) -> dict:
        return {
            "config": self.config,
            "region": self.region,
            "profile": self.profile,
            "dry_run": self.dry_run,
        }

    def prepare_tags(self) -> list[Dict[str, str]]:
        """Prepare CloudFormation tags."""
        return [{"Key": key, "Value": str(value)} for key, value in self.tags.items()]

    def generate_template(self) -> str:
        """Generate the CloudFormation template."""
        self.pattern = ContainerAppPattern(
            self.config,
            self.environment,
            backend_path=self.backend_path,
            frontend_path=self.frontend_path,
        )
        return self.pattern.to_yaml()

    def deploy_stack(self, stack_name: str, template_body: str, tags: list[Dict[str, str]]) -> bool:
        """Create or update the CloudFormation stack."""
        existing_status = self.check_stack_status(stack_name)

        if existing_status:
            self.log(f"Updating stack {stack_name}...", "INFO")
            try:
                self.cloudformation.update_stack(
                    StackName=stack_name,
                    TemplateBody=template_body,
                    Tags=tags,
                    Capabilities=CAPABILITIES
                )
            except Exception as e:
                if "No updates are to be performed" in str(e):
                    self.log("No stack updates needed", "INFO")
                    return True
                self.add_error(f"Stack update failed: {e}")
                return False

            if not self.wait_for_stack(stack_name, "update"):
                return False
            self.log(f"Stack {stack_name} updated successfully", "SUCCESS")
            return True

        self.log(f"Creating stack {stack_name}...", "INFO")
        try:
            self.cloudformation.create_stack(
                StackName=stack_name,
                TemplateBody=template_body,
                Tags=tags,
                Capabilities=CAPABILITIES
            )
        except Exception as e:
            self.add_error(f"Failed to create stack: {e}")
            return False

        if not self.wait_for_stack(stack_name, "create"):
            return False
        self.log(f"Stack {stack_name} created successfully", "SUCCESS")
        return True

    def deploy(self) -> DeploymentResult:
        """Execute infrastructure deployment."""
        self.log(f"Deploying {self.project_name} infrastructure to {self.environment}", "INFO")

        try:
            template_body = self.generate_template()
        except (ValueError, FileNotFoundError) as e:
            self.add_error(str(e))
            return self.failed(f"Failed to generate template: {e}")

        stack_name = self.get_stack_name()

        if self.dry_run:
            self.template_output.parent.mkdir(parents=True, exist_ok=True)
            self.template_output.write_text(template_body)
            self.log(f"Saved generated template to {self.template_output}", "INFO")
            self.add_output("TemplateFile", str(self.template_output))

        # Images must exist before any task referencing them is scheduled
        pusher = ImagePusher(
            self.project_name,
            self.environment,
            self.pattern.build_actions,
            **self._child_kwargs()
        )
        if not pusher.validate_prerequisites():
            self.errors.extend(pusher.errors)
            return self.failed("Image build prerequisites not met")

        push_result = pusher.deploy()
        if not push_result.success:
            self.errors.extend(push_result.errors or [])
            return self.failed("Failed to publish container images")

        if self.dry_run:
            self.log(f"DRY RUN: Would create or update stack {stack_name}", "INFO")
        else:
            if not self.clean_failed_stack(stack_name):
                return self.failed("Failed to clean up existing failed stack")

            if not self.deploy_stack(stack_name, template_body, self.prepare_tags()):
                return self.failed(f"Failed to deploy stack {stack_name}")

            self.outputs.update(self.get_stack_outputs(stack_name))

        if self.pattern.static_origin is not None:
            uploader = StaticFileUploader(
                self.project_name,
                self.environment,
                self.pattern.static_origin.files,
                bucket_name=self.outputs.get("StaticBucketName"),
                distribution_id=self.outputs.get("CloudFrontDistributionId"),
                **self._child_kwargs()
            )
            upload_result = uploader.deploy()
            self.warnings.extend(upload_result.warnings or [])
            if not upload_result.success:
                self.errors.extend(upload_result.errors or [])
                return self.failed("Failed to upload static files")
            self.add_output("FilesUploaded", upload_result.outputs.get("FilesUploaded", 0))

        return DeploymentResult(
            status=DeploymentStatus.SUCCESS,
            message=f"Infrastructure deployed successfully to {self.environment}",
            duration=0,
            outputs=self.outputs,
            warnings=self.warnings
        )

    def destroy(self, force: bool = False) -> DeploymentResult:
        """Empty the stack's buckets and delete the stack."""
        stack_name = self.get_stack_name()

        if self.dry_run:
            self.log(f"DRY RUN: Would empty buckets and delete stack {stack_name}", "INFO")
            return DeploymentResult(
                status=DeploymentStatus.SUCCESS,
                message=f"Dry run: {stack_name} not deleted",
                duration=0
            )

        manager = StackManager(region=self.region, session=self._session)
        if manager.delete_stack(stack_name, force=force):
            return DeploymentResult(
                status=DeploymentStatus.SUCCESS,
                message=f"Stack {stack_name} deleted",
                duration=0
            )
        self.add_error(f"Failed to delete stack {stack_name}")
        return self.failed(f"Failed to delete stack {stack_name}")
