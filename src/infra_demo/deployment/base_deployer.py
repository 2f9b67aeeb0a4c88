"""
Shared plumbing for the image, static file and stack deployers.

Each deployer owns one boto3 session, collects outputs, errors and warnings
while it runs and reports them in a single DeploymentResult.
"""

import subprocess
import sys
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

import boto3
from botocore.exceptions import ClientError

from ..config import ProjectConfig, get_project_config

# Stack states that block an update until the stack is deleted
FAILED_STACK_STATES = ("ROLLBACK_COMPLETE", "ROLLBACK_FAILED", "CREATE_FAILED", "DELETE_FAILED")

STACK_POLL_DELAY = 30

LOG_PREFIXES = {
    "INFO": "ℹ️",
    "SUCCESS": "✅",
    "WARNING": "⚠️",
    "ERROR": "❌",
    "DEBUG": "🔍",
}


class DeploymentStatus(Enum):
    """Outcome of a deployer run."""
    SUCCESS = "success"
    FAILED = "failed"


@dataclass
class DeploymentResult:
    """What a deployer reports back to the CLI."""
    status: DeploymentStatus
    message: str
    duration: float
    outputs: Optional[Dict[str, Any]] = None
    errors: Optional[List[str]] = None
    warnings: Optional[List[str]] = None

    @property
    def success(self) -> bool:
        return self.status == DeploymentStatus.SUCCESS


class BaseDeployer(ABC):
    """Base class for the deployers driven by ``infra-demo deploy``."""

    def __init__(
        self,
        project_name: str,
        environment: str,
        config: Optional[ProjectConfig] = None,
        region: Optional[str] = None,
        profile: Optional[str] = None,
        dry_run: bool = False
    ):
        """
        Initialize base deployer.

        Args:
            project_name: Name of the project
            environment: Deployment environment
            config: Project configuration (loaded automatically if not provided)
            region: AWS region (uses config default if not provided)
            profile: AWS profile to use
            dry_run: Log every AWS and docker action instead of running it
        """
        self.project_name = project_name
        self.environment = environment
        self.config = config or get_project_config(project_name)
        self.region = region or self.config.aws_region
        self.profile = profile
        self.dry_run = dry_run

        session_args = {"region_name": self.region}
        if profile:
            session_args["profile_name"] = profile
        self._session = boto3.Session(**session_args)
        self._clients: Dict[str, Any] = {}

        self.outputs: Dict[str, Any] = {}
        self.errors: List[str] = []
        self.warnings: List[str] = []

    def _get_client(self, service: str) -> Any:
        if service not in self._clients:
            self._clients[service] = self._session.client(service)
        return self._clients[service]

    @property
    def cloudformation(self):
        return self._get_client("cloudformation")

    @property
    def s3(self):
        return self._get_client("s3")

    @property
    def ecr(self):
        return self._get_client("ecr")

    @property
    def cloudfront(self):
        return self._get_client("cloudfront")

    @property
    def sts(self):
        return self._get_client("sts")

    def get_account_id(self) -> str:
        """Account the images are pushed to, looked up once per config."""
        if not self.config.aws_account_id:
            self.config.aws_account_id = self.sts.get_caller_identity()["Account"]
        return self.config.aws_account_id

    def get_stack_name(self) -> str:
        return self.config.get_stack_name(self.environment)

    def add_output(self, key: str, value: Any) -> None:
        self.outputs[key] = value

    def add_error(self, message: str) -> None:
        self.errors.append(message)
        print(f"❌ ERROR: {message}", file=sys.stderr)

    def add_warning(self, message: str) -> None:
        self.warnings.append(message)
        print(f"⚠️  WARNING: {message}")

    def log(self, message: str, level: str = "INFO") -> None:
        print(f"{LOG_PREFIXES.get(level, '📝')} {message}")

    def failed(self, message: str) -> DeploymentResult:
        """Failed result carrying the errors collected so far."""
        return DeploymentResult(
            status=DeploymentStatus.FAILED,
            message=message,
            duration=0,
            errors=self.errors
        )

    def run_command(
        self,
        command: List[str],
        input: Optional[str] = None,
        redact: bool = False
    ) -> Tuple[int, str, str]:
        """
        Run a docker command.

        Args:
            command: Command and arguments
            input: Text written to the command's stdin
            redact: Only echo the executable (the arguments carry credentials)

        Returns:
            Tuple of (return_code, stdout, stderr)
        """
        shown = command[0] if redact else " ".join(command)
        self.log(f"Running command: {shown}", "DEBUG")

        if self.dry_run:
            self.log("DRY RUN: Command would be executed", "INFO")
            return 0, "", ""

        try:
            result = subprocess.run(
                command,
                input=input,
                capture_output=True,
                text=True,
                check=False
            )
        except OSError as e:
            self.add_error(f"Failed to run command: {e}")
            return 1, "", str(e)

        if result.returncode != 0:
            self.log(f"Command failed with code {result.returncode}", "ERROR")
            if result.stderr:
                self.log(f"STDERR: {result.stderr}", "ERROR")

        return result.returncode, result.stdout or "", result.stderr or ""

    def check_stack_status(self, stack_name: str) -> Optional[str]:
        """Current stack status, or None when the stack does not exist."""
        try:
            stacks = self.cloudformation.describe_stacks(StackName=stack_name)["Stacks"]
        except ClientError as e:
            if "does not exist" in str(e):
                return None
            raise
        return stacks[0]["StackStatus"] if stacks else None

    def clean_failed_stack(self, stack_name: str) -> bool:
        """Delete a stack left in a state CloudFormation cannot update."""
        status = self.check_stack_status(stack_name)
        if status not in FAILED_STACK_STATES:
            return True

        self.log(f"Stack {stack_name} is in {status} state. Cleaning up...", "WARNING")
        if self.dry_run:
            self.log("DRY RUN: Would delete failed stack", "INFO")
            return True

        try:
            self.cloudformation.delete_stack(StackName=stack_name)
        except ClientError as e:
            self.add_error(f"Failed to delete stack: {e}")
            return False

        if not self.wait_for_stack(stack_name, "delete"):
            return False
        self.log(f"Successfully deleted failed stack {stack_name}", "SUCCESS")
        return True

    def get_stack_outputs(self, stack_name: Optional[str] = None) -> Dict[str, str]:
        """Stack outputs as a flat key/value mapping."""
        try:
            stacks = self.cloudformation.describe_stacks(
                StackName=stack_name or self.get_stack_name()
            )["Stacks"]
        except ClientError as e:
            self.add_warning(f"Failed to get stack outputs: {e}")
            return {}

        if not stacks:
            return {}
        return {o["OutputKey"]: o["OutputValue"] for o in stacks[0].get("Outputs", [])}

    def wait_for_stack(
        self,
        stack_name: str,
        operation: str = "create",
        max_attempts: int = 120
    ) -> bool:
        """Block until a stack operation settles, reporting the first failed resource."""
        if self.dry_run:
            self.log(f"DRY RUN: Would wait for stack {operation}", "INFO")
            return True

        try:
            waiter = self.cloudformation.get_waiter(f"stack_{operation}_complete")
            waiter.wait(
                StackName=stack_name,
                WaiterConfig={"Delay": STACK_POLL_DELAY, "MaxAttempts": max_attempts}
            )
            return True
        except Exception as e:
            self.add_error(f"Stack {operation} failed: {e}")

        try:
            events = self.cloudformation.describe_stack_events(StackName=stack_name)["StackEvents"]
        except ClientError as e:
            self.log(f"Could not retrieve stack events: {e}", "WARNING")
            return False

        failure = next((ev for ev in events if "FAILED" in ev.get("ResourceStatus", "")), None)
        if failure:
            self.add_error(
                f"Resource {failure['LogicalResourceId']} ({failure['ResourceType']}) failed: "
                f"{failure.get('ResourceStatusReason', 'No reason provided')}"
            )
        return False

    def validate_prerequisites(self) -> bool:
        """Check AWS credentials (skipped on dry runs)."""
        if self.dry_run:
            self.log("DRY RUN: Skipping AWS credential check", "INFO")
            return True

        try:
            self.sts.get_caller_identity()
        except Exception as e:
            self.add_error(f"AWS credentials not configured: {e}")
            return False
        return True

    @abstractmethod
    def deploy(self) -> DeploymentResult:
        """Run the deployment."""

    def execute(self) -> DeploymentResult:
        """Run deploy() after the prerequisite check and fold collected state into the result."""
        start = time.time()

        try:
            if not self.validate_prerequisites():
                result = self.failed("Prerequisites validation failed")
            else:
                result = self.deploy()
        except Exception as e:
            self.add_error(f"Unexpected error: {e}")
            result = self.failed(f"Deployment failed: {e}")

        result.duration = time.time() - start
        result.outputs = {**self.outputs, **(result.outputs or {})}
        result.errors = list(dict.fromkeys(self.errors + (result.errors or [])))
        result.warnings = list(dict.fromkeys(self.warnings + (result.warnings or [])))
        return result
