"""
Static frontend upload to S3 and CloudFront invalidation.
"""

import hashlib
import time
from typing import Optional, Sequence

from botocore.exceptions import ClientError

from ..constructs.storage import StaticFile
from .base_deployer import BaseDeployer, DeploymentResult, DeploymentStatus


def file_md5(static_file: StaticFile) -> str:
    """MD5 of a file, comparable with a single-part S3 ETag."""
    digest = hashlib.md5()
    with open(static_file.path, "rb") as f:
        for chunk in iter(lambda: f.read(1024 * 1024), b""):
            digest.update(chunk)
    return digest.hexdigest()


class StaticFileUploader(BaseDeployer):
    """Deploy frontend files to the stack's bucket."""

    def __init__(
        self,
        project_name: str,
        environment: str,
        files: Sequence[StaticFile],
        bucket_name: Optional[str] = None,
        distribution_id: Optional[str] = None,
        **kwargs,
    ):
        """
        Initialize static file uploader.

        Args:
            project_name: Name of the project
            environment: Deployment environment
            files: Files to upload
            bucket_name: Target bucket (read from stack outputs if not provided)
            distribution_id: Distribution to invalidate (read from stack outputs if not provided)
            **kwargs: Additional arguments for BaseDeployer
        """
        super().__init__(project_name, environment, **kwargs)
        self.files = list(files)
        self.bucket_name = bucket_name
        self.distribution_id = distribution_id

    def is_unchanged(self, bucket_name: str, static_file: StaticFile) -> bool:
        """Check whether the object already holds the file's bytes."""
        try:
            response = self.s3.head_object(Bucket=bucket_name, Key=static_file.key)
        except ClientError as e:
            if e.response["Error"]["Code"] in ("404", "NoSuchKey", "NotFound"):
                return False
            raise
        return response.get("ETag", "").strip('"') == file_md5(static_file)

    def upload_files(self, bucket_name: str) -> int:
        """Upload changed files; returns how many were written."""
        self.log(f"Uploading {len(self.files)} files to S3 bucket {bucket_name}...", "INFO")

        if self.dry_run:
            self.log("DRY RUN: Would upload files to S3", "INFO")
            for static_file in self.files[:5]:
                self.log(f"  {static_file.key} ({static_file.content_type})", "DEBUG")
            if len(self.files) > 5:
                self.log(f"  ... and {len(self.files) - 5} more files", "DEBUG")
            return 0

        upload_count = 0
        for static_file in self.files:
            if self.is_unchanged(bucket_name, static_file):
                continue

            with open(static_file.path, "rb") as f:
                self.s3.put_object(
                    Bucket=bucket_name,
                    Key=static_file.key,
                    Body=f.read(),
                    ContentType=static_file.content_type,
                    CacheControl=static_file.cache_control,
                )
            upload_count += 1

            # Progress indicator
            if upload_count % 50 == 0:
                self.log(f"Uploaded {upload_count} files...", "INFO")

        skipped = len(self.files) - upload_count
        self.log(f"Uploaded {upload_count} files ({skipped} unchanged)", "SUCCESS")
        return upload_count

    def invalidate_cloudfront(self, distribution_id: str) -> bool:
        """Create CloudFront invalidation."""
        self.log("Creating CloudFront invalidation...", "INFO")

        if self.dry_run:
            self.log("DRY RUN: Would create CloudFront invalidation", "INFO")
            return True

        try:
            response = self.cloudfront.create_invalidation(
                DistributionId=distribution_id,
                InvalidationBatch={
                    "Paths": {"Quantity": 1, "Items": ["/*"]},
                    "CallerReference": f"{self.project_name}-{self.environment}-{int(time.time())}",
                },
            )
        except ClientError as e:
            self.add_warning(f"Failed to create invalidation: {e}")
            return False

        invalidation_id = response["Invalidation"]["Id"]
        self.log(f"Created invalidation {invalidation_id}", "SUCCESS")
        self.add_output("CloudFrontInvalidationId", invalidation_id)
        return True

    def deploy(self) -> DeploymentResult:
        """Execute static file deployment."""
        bucket_name = self.bucket_name
        distribution_id = self.distribution_id
        if not bucket_name or not distribution_id:
            stack_outputs = {} if self.dry_run else self.get_stack_outputs()
            bucket_name = bucket_name or stack_outputs.get("StaticBucketName")
            distribution_id = distribution_id or stack_outputs.get("CloudFrontDistributionId")

        if not bucket_name:
            if self.dry_run:
                bucket_name = "<stack bucket>"
            else:
                self.add_error("Static bucket not found in stack outputs")
                return self.failed("No bucket to upload to")

        try:
            uploaded = self.upload_files(bucket_name)
        except (ClientError, OSError) as e:
            self.add_error(f"Failed to upload static files: {e}")
            return self.failed("Failed to upload files to S3")

        # Invalidation failure is not critical
        if distribution_id and (uploaded or self.dry_run):
            self.invalidate_cloudfront(distribution_id)

        self.add_output("StaticBucket", bucket_name)
        self.add_output("FilesUploaded", uploaded)

        return DeploymentResult(
            status=DeploymentStatus.SUCCESS,
            message=f"Static files deployed to {bucket_name}",
            duration=0,
            outputs=self.outputs,
            warnings=self.warnings,
        )
