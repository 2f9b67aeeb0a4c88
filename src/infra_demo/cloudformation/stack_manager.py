"""
CloudFormation stack management operations.
"""

from typing import Any, Dict, List, Optional

import boto3
from botocore.exceptions import ClientError

ACTIVE_STACK_STATUSES = [
    "CREATE_IN_PROGRESS",
    "CREATE_FAILED",
    "CREATE_COMPLETE",
    "ROLLBACK_IN_PROGRESS",
    "ROLLBACK_FAILED",
    "ROLLBACK_COMPLETE",
    "DELETE_IN_PROGRESS",
    "DELETE_FAILED",
    "UPDATE_IN_PROGRESS",
    "UPDATE_COMPLETE_CLEANUP_IN_PROGRESS",
    "UPDATE_COMPLETE",
    "UPDATE_ROLLBACK_IN_PROGRESS",
    "UPDATE_ROLLBACK_FAILED",
    "UPDATE_ROLLBACK_COMPLETE_CLEANUP_IN_PROGRESS",
    "UPDATE_ROLLBACK_COMPLETE",
    "REVIEW_IN_PROGRESS",
]


def _stack_missing(error: ClientError) -> bool:
    return "does not exist" in str(error)


class StackManager:
    """Manage CloudFormation stack operations."""

    def __init__(
        self,
        region: Optional[str] = None,
        profile: Optional[str] = None,
        session: Optional[boto3.Session] = None,
    ):
        """
        Initialize stack manager.

        Args:
            region: AWS region
            profile: AWS profile to use
            session: Existing session to share clients with
        """
        self.region = region or "us-east-1"
        self.profile = profile

        if session is None:
            session_args = {"region_name": self.region}
            if profile:
                session_args["profile_name"] = profile
            session = boto3.Session(**session_args)

        self.cloudformation = session.client("cloudformation")
        self.s3 = session.client("s3")

    def get_stack_status(self, stack_name: str) -> Optional[str]:
        """Get current stack status."""
        try:
            response = self.cloudformation.describe_stacks(StackName=stack_name)
            if response["Stacks"]:
                return str(response["Stacks"][0]["StackStatus"])
        except ClientError as e:
            if _stack_missing(e):
                return None
            raise
        return None

    def get_stack_outputs(self, stack_name: str) -> Dict[str, str]:
        """Get outputs from a CloudFormation stack."""
        try:
            response = self.cloudformation.describe_stacks(StackName=stack_name)
        except ClientError as e:
            if _stack_missing(e):
                return {}
            raise

        outputs = {}
        for stack in response["Stacks"][:1]:
            for output in stack.get("Outputs", []):
                outputs[output["OutputKey"]] = output["OutputValue"]
        return outputs

    def list_stacks(self, project_name: Optional[str] = None) -> List[Dict[str, Any]]:
        """List CloudFormation stacks, optionally filtered by project."""
        stacks = []

        paginator = self.cloudformation.get_paginator("list_stacks")
        for page in paginator.paginate(StackStatusFilter=ACTIVE_STACK_STATUSES):
            for stack in page["StackSummaries"]:
                # Filter by project name if specified
                if project_name and not stack["StackName"].startswith(project_name):
                    continue

                stacks.append(
                    {
                        "name": stack["StackName"],
                        "status": stack["StackStatus"],
                        "created": str(stack["CreationTime"]),
                        "updated": str(
                            stack.get("LastUpdatedTime", stack["CreationTime"])
                        ),
                    }
                )

        return stacks

    def diagnose_stack_failure(self, stack_name: str) -> Dict[str, Any]:
        """Diagnose stack failure and return detailed information."""
        diagnosis: Dict[str, Any] = {
            "stack_name": stack_name,
            "status": None,
            "failed_resources": [],
            "recommendations": [],
        }

        status = self.get_stack_status(stack_name)
        diagnosis["status"] = status

        if not status:
            diagnosis["recommendations"].append("Stack does not exist")
            return diagnosis

        response = self.cloudformation.describe_stack_events(StackName=stack_name)
        for event in response["StackEvents"]:
            if event["ResourceStatus"] not in ("CREATE_FAILED", "UPDATE_FAILED", "DELETE_FAILED"):
                continue

            reason = event.get("ResourceStatusReason", "No reason provided")
            diagnosis["failed_resources"].append(
                {
                    "logical_id": event["LogicalResourceId"],
                    "resource_type": event["ResourceType"],
                    "status": event["ResourceStatus"],
                    "reason": reason,
                    "timestamp": str(event["Timestamp"]),
                }
            )
            for recommendation in self._get_failure_recommendations(event["ResourceType"], reason):
                if recommendation not in diagnosis["recommendations"]:
                    diagnosis["recommendations"].append(recommendation)

        if status in ("ROLLBACK_COMPLETE", "ROLLBACK_FAILED"):
            diagnosis["recommendations"].append(
                "Stack is in rollback state. Destroy it before deploying again."
            )

        return diagnosis

    def _get_failure_recommendations(self, resource_type: str, reason: str) -> List[str]:
        """Get recommendations based on failure reason."""
        recommendations = []

        if resource_type == "AWS::S3::Bucket" and (
            "BucketNotEmpty" in reason or "bucket is not empty" in reason.lower()
        ):
            recommendations.append("Empty the S3 bucket before deleting the stack")

        if resource_type == "AWS::ECS::Service":
            if "did not stabilize" in reason:
                recommendations.append(
                    "Tasks failed to become healthy. Check the container logs and the health check path."
                )
            if "CannotPullContainerError" in reason or "image" in reason.lower():
                recommendations.append("Make sure the image was pushed to ECR before the stack update")

        if resource_type.startswith("AWS::ElasticLoadBalancingV2::") and "priority" in reason.lower():
            recommendations.append("Listener rule priorities must be unique per listener")

        # IAM permission issues
        if "AccessDenied" in reason or "is not authorized" in reason:
            recommendations.append("Check IAM permissions for CloudFormation")

        # VPC issues
        if resource_type.startswith("AWS::EC2::") and "DependencyViolation" in reason:
            recommendations.append(
                "VPC resources have dependencies. Check security groups and ENIs."
            )

        return recommendations

    def get_stack_buckets(self, stack_name: str) -> List[str]:
        """Physical names of the S3 buckets owned by a stack."""
        paginator = self.cloudformation.get_paginator("list_stack_resources")
        buckets = []
        for page in paginator.paginate(StackName=stack_name):
            for resource in page["StackResourceSummaries"]:
                if resource["ResourceType"] == "AWS::S3::Bucket" and resource.get("PhysicalResourceId"):
                    buckets.append(resource["PhysicalResourceId"])
        return buckets

    def empty_bucket(self, bucket_name: str) -> int:
        """Delete every object and object version in a bucket."""
        deleted = 0

        paginator = self.s3.get_paginator("list_object_versions")
        for page in paginator.paginate(Bucket=bucket_name):
            objects = [
                {"Key": v["Key"], "VersionId": v["VersionId"]}
                for v in page.get("Versions", []) + page.get("DeleteMarkers", [])
            ]
            if objects:
                self.s3.delete_objects(Bucket=bucket_name, Delete={"Objects": objects})
                deleted += len(objects)

        paginator = self.s3.get_paginator("list_objects_v2")
        for page in paginator.paginate(Bucket=bucket_name):
            objects = [{"Key": obj["Key"]} for obj in page.get("Contents", [])]
            if objects:
                self.s3.delete_objects(Bucket=bucket_name, Delete={"Objects": objects})
                deleted += len(objects)

        return deleted

    def delete_stack(self, stack_name: str, force: bool = False) -> bool:
        """Empty the stack's buckets and delete the stack."""
        print(f"🗑️  Deleting stack {stack_name}...")

        status = self.get_stack_status(stack_name)
        if not status:
            print(f"Stack {stack_name} does not exist")
            return True

        if status == "DELETE_IN_PROGRESS":
            print("Stack deletion already in progress")
            return self._wait_for_deletion(stack_name)

        if status == "DELETE_FAILED" and not force:
            print("❌ Stack is in DELETE_FAILED state. Use --force to retry.")
            for resource in self.diagnose_stack_failure(stack_name)["failed_resources"]:
                print(f"  - {resource['logical_id']} ({resource['resource_type']})")
            return False

        # Non-empty buckets block deletion
        for bucket_name in self.get_stack_buckets(stack_name):
            try:
                count = self.empty_bucket(bucket_name)
            except ClientError as e:
                if e.response["Error"]["Code"] == "NoSuchBucket":
                    continue
                raise
            print(f"✅ Emptied bucket {bucket_name} ({count} objects)")

        try:
            self.cloudformation.delete_stack(StackName=stack_name)
        except ClientError as e:
            print(f"❌ Failed to delete stack: {e}")
            return False

        return self._wait_for_deletion(stack_name)

    def _wait_for_deletion(self, stack_name: str) -> bool:
        """Wait for stack deletion to complete."""
        print("Waiting for stack deletion...")

        try:
            waiter = self.cloudformation.get_waiter("stack_delete_complete")
            waiter.wait(
                StackName=stack_name, WaiterConfig={"Delay": 30, "MaxAttempts": 120}
            )
        except Exception as e:
            print(f"❌ Stack deletion failed: {e}")
            return False

        print("✅ Stack deleted successfully")
        return True

    def get_all_outputs_formatted(self, stack_name: str) -> str:
        """Render stack outputs as aligned ``key: value`` lines."""
        outputs = self.get_stack_outputs(stack_name)
        if not outputs:
            return f"No outputs for stack {stack_name}"

        width = max(len(key) for key in outputs)
        lines = [f"Outputs for {stack_name}:"]
        for key in sorted(outputs):
            lines.append(f"  {key.ljust(width)}  {outputs[key]}")
        return "\n".join(lines)
