"""
Container image builds: authenticate, build and push to ECR.
"""

import base64
import shutil
from typing import List, Optional, Sequence

from botocore.exceptions import ClientError

from ..constructs.registry import BuildAction
from .base_deployer import BaseDeployer, DeploymentResult, DeploymentStatus


def resolve_image_tag(tag: str, account_id: str, region: str) -> str:
    """Substitute the pseudo parameters a template-side tag may carry."""
    return tag.replace("${AWS::AccountId}", account_id).replace("${AWS::Region}", region)


class ImagePusher(BaseDeployer):
    """Run the build actions declared by the stack before it is deployed."""

    def __init__(
        self,
        project_name: str,
        environment: str,
        build_actions: Sequence[BuildAction],
        **kwargs,
    ):
        """
        Initialize image pusher.

        Args:
            project_name: Name of the project
            environment: Deployment environment
            build_actions: Images to build, in order
            **kwargs: Additional arguments for BaseDeployer
        """
        super().__init__(project_name, environment, **kwargs)
        self.build_actions = list(build_actions)
        self._logged_in: Optional[str] = None

    def validate_prerequisites(self) -> bool:
        """Validate AWS credentials and the docker client."""
        if not super().validate_prerequisites():
            return False

        if self.build_actions and not self.dry_run and shutil.which("docker") is None:
            self.add_error("docker executable not found on PATH")
            return False

        return True

    def ensure_repository(self, repository_name: str) -> None:
        """Create the ECR repository unless it already exists."""
        try:
            self.ecr.describe_repositories(repositoryNames=[repository_name])
        except ClientError as e:
            if e.response["Error"]["Code"] != "RepositoryNotFoundException":
                raise
            self.ecr.create_repository(
                repositoryName=repository_name,
                imageScanningConfiguration={"scanOnPush": True},
                tags=[
                    {"Key": "Project", "Value": self.project_name},
                    {"Key": "Environment", "Value": self.environment},
                ],
            )
            self.log(f"Created ECR repository {repository_name}", "SUCCESS")

    def image_exists(self, repository_name: str, image_tag: str) -> bool:
        """Check whether a tag is already present in the repository."""
        try:
            response = self.ecr.describe_images(
                repositoryName=repository_name,
                imageIds=[{"imageTag": image_tag}],
            )
        except ClientError as e:
            if e.response["Error"]["Code"] in ("ImageNotFoundException", "RepositoryNotFoundException"):
                return False
            raise
        return bool(response.get("imageDetails"))

    def login(self) -> bool:
        """Authenticate the docker client against the registry."""
        response = self.ecr.get_authorization_token()
        auth = response["authorizationData"][0]
        endpoint = auth["proxyEndpoint"]
        if self._logged_in == endpoint:
            return True

        username, password = base64.b64decode(auth["authorizationToken"]).decode("utf-8").split(":", 1)
        return_code, _, stderr = self.run_command(
            ["docker", "login", "--username", username, "--password-stdin", endpoint],
            input=password,
            redact=True,
        )
        if return_code != 0:
            self.add_error(f"Docker login failed: {stderr}")
            return False

        self._logged_in = endpoint
        return True

    def push(self, action: BuildAction) -> bool:
        """Build and push one image unless its tag already exists."""
        account_id = self.get_account_id()
        tag = resolve_image_tag(action.image.tag, account_id, self.region)
        content_hash = action.image.content_hash

        self.ensure_repository(action.repository_name)
        if self.image_exists(action.repository_name, content_hash):
            self.log(f"Image {action.name} is up to date ({content_hash[:12]})", "INFO")
            return True

        if not self.login():
            return False

        self.log(f"Building {action.name} from {action.context}", "INFO")
        return_code, _, stderr = self.run_command(
            ["docker", "build", "-t", tag, str(action.context)]
        )
        if return_code != 0:
            self.add_error(f"Docker build failed for {action.name}: {stderr}")
            return False

        return_code, _, stderr = self.run_command(["docker", "push", tag])
        if return_code != 0:
            self.add_error(f"Docker push failed for {action.name}: {stderr}")
            return False

        self.log(f"Pushed {tag}", "SUCCESS")
        return True

    def deploy(self) -> DeploymentResult:
        """Execute every build action in order."""
        if not self.build_actions:
            self.log("No images to build", "INFO")

        pushed: List[str] = []
        for action in self.build_actions:
            if self.dry_run:
                self.log(
                    f"DRY RUN: Would build and push {action.name} "
                    f"({action.image.content_hash[:12]}) from {action.context}",
                    "INFO",
                )
                continue

            if not self.push(action):
                return self.failed(f"Failed to publish image {action.name}")
            pushed.append(action.name)

        self.add_output("ImagesPublished", len(pushed))
        return DeploymentResult(
            status=DeploymentStatus.SUCCESS,
            message=f"Published {len(pushed)} image(s)",
            duration=0,
            outputs=self.outputs,
            warnings=self.warnings,
        )
