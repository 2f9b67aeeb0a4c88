"""
Storage constructs for static frontend content.
"""

import logging
import mimetypes
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, List, Union

from troposphere import Export, GetAtt, Join, Output, Ref, Sub, Tags, Template
from troposphere import cloudfront, s3

from ..naming import NamingConvention
from .distribution import Origin

logger = logging.getLogger(__name__)

DEFAULT_EXTENSIONS = (".json", ".js", ".html", ".png", ".ico", ".txt", ".map")

# Content type mappings
CONTENT_TYPES = {
    ".html": "text/html",
    ".css": "text/css",
    ".js": "application/javascript",
    ".json": "application/json",
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".svg": "image/svg+xml",
    ".ico": "image/x-icon",
    ".txt": "text/plain",
    ".map": "application/json",
}

# Cache control settings by file type
CACHE_CONTROL = {
    "html": "public, max-age=0, must-revalidate",
    "json": "public, max-age=3600",
    "default": "public, max-age=86400",
}


def get_content_type(path: Path) -> str:
    """Get content type for a file."""
    ext = path.suffix.lower()
    if ext in CONTENT_TYPES:
        return CONTENT_TYPES[ext]

    content_type, _ = mimetypes.guess_type(str(path))
    return content_type or "application/octet-stream"


def get_cache_control(path: Path) -> str:
    """Get cache control header for a file."""
    ext = path.suffix.lower()
    if ext in (".html", ".htm"):
        return CACHE_CONTROL["html"]
    if ext == ".json":
        return CACHE_CONTROL["json"]
    return CACHE_CONTROL["default"]


@dataclass(frozen=True)
class StaticFile:
    """A file destined for the static bucket, keyed by its relative path."""

    key: str
    path: Path
    content_type: str

    @property
    def cache_control(self) -> str:
        return get_cache_control(self.path)


def collect_static_files(
    content_root: Union[str, Path],
    extensions: Iterable[str] = DEFAULT_EXTENSIONS,
) -> List[StaticFile]:
    """
    Enumerate the publishable files under a build directory.

    Only files whose extension is in ``extensions`` are returned, so source
    maps and assets outside the allow-list never reach the bucket.

    Args:
        content_root: Frontend build output directory
        extensions: Allowed file extensions (with leading dot)

    Returns:
        Files sorted by key

    Raises:
        FileNotFoundError: If the content root does not exist
    """
    root = Path(content_root)
    if not root.is_dir():
        raise FileNotFoundError(f"Static content directory not found: {root}")

    allowed = {ext.lower() if ext.startswith(".") else f".{ext.lower()}" for ext in extensions}

    files = []
    for file_path in root.rglob("*"):
        if not file_path.is_file() or file_path.suffix.lower() not in allowed:
            continue
        files.append(
            StaticFile(
                key=file_path.relative_to(root).as_posix(),
                path=file_path,
                content_type=get_content_type(file_path),
            )
        )

    files.sort(key=lambda f: f.key)
    logger.debug(f"Collected {len(files)} static files from {root}")
    return files


class StaticContentOrigin:
    """
    L2 Construct for a private S3 bucket served through CloudFront.

    The bucket blocks all public access; an origin access identity is the only
    reader. Object uploads happen after the stack is deployed, so the template
    only carries the bucket, its policy and the identity.
    """

    def __init__(
        self,
        template: Template,
        config: Dict[str, Any],
        environment: str,
        name: str,
        content_path: Union[str, Path],
    ):
        self.template = template
        self.config = config
        self.environment = environment
        self.name = name
        self.content_path = Path(content_path)
        self.resources: Dict[str, Any] = {}

        extensions = config.get("extensions", DEFAULT_EXTENSIONS)
        self.files = collect_static_files(self.content_path, extensions)

        self._create_bucket()
        self._create_origin_access_identity()
        self._create_outputs()

    def _create_bucket(self):
        """Create the private, encrypted content bucket."""
        self.bucket = self.template.add_resource(
            s3.Bucket(
                NamingConvention.logical_id(self.name, "bucket"),
                PublicAccessBlockConfiguration=s3.PublicAccessBlockConfiguration(
                    BlockPublicAcls=True,
                    BlockPublicPolicy=True,
                    IgnorePublicAcls=True,
                    RestrictPublicBuckets=True
                ),
                BucketEncryption=s3.BucketEncryption(
                    ServerSideEncryptionConfiguration=[
                        s3.ServerSideEncryptionRule(
                            ServerSideEncryptionByDefault=s3.ServerSideEncryptionByDefault(
                                SSEAlgorithm="AES256"
                            )
                        )
                    ]
                ),
                Tags=Tags(
                    Name=Sub(f"${{AWS::StackName}}-{self.name}"),
                    Environment=self.environment
                )
            )
        )
        self.resources["bucket"] = self.bucket

    def _create_origin_access_identity(self):
        """Create the CloudFront identity allowed to read the bucket."""
        self.oai = self.template.add_resource(
            cloudfront.CloudFrontOriginAccessIdentity(
                NamingConvention.logical_id(self.name, "origin-access-identity"),
                CloudFrontOriginAccessIdentityConfig=cloudfront.CloudFrontOriginAccessIdentityConfig(
                    Comment=Sub(f"OAI for ${{AWS::StackName}} {self.name}")
                )
            )
        )

        bucket_policy = self.template.add_resource(
            s3.BucketPolicy(
                NamingConvention.logical_id(self.name, "bucket-policy"),
                Bucket=Ref(self.bucket),
                PolicyDocument={
                    "Version": "2012-10-17",
                    "Statement": [
                        {
                            "Sid": "AllowCloudFrontAccess",
                            "Effect": "Allow",
                            "Principal": {
                                "CanonicalUser": GetAtt(self.oai, "S3CanonicalUserId")
                            },
                            "Action": "s3:GetObject",
                            "Resource": Join("", [GetAtt(self.bucket, "Arn"), "/*"])
                        }
                    ]
                }
            )
        )

        self.resources["oai"] = self.oai
        self.resources["bucket_policy"] = bucket_policy

    def _create_outputs(self):
        """Create CloudFormation outputs for cross-stack references."""
        self.template.add_output(
            Output(
                "StaticBucketName",
                Value=Ref(self.bucket),
                Description="S3 bucket holding the static frontend",
                Export=Export(Sub("${AWS::StackName}-StaticBucketName"))
            )
        )

    def as_origin(self, origin_id: str = "S3Origin") -> Origin:
        """Expose the bucket as an S3 origin for the edge."""
        return Origin(
            origin_id=origin_id,
            domain_name=GetAtt(self.bucket, "RegionalDomainName"),
            origin_access_identity=Join(
                "", ["origin-access-identity/cloudfront/", Ref(self.oai)]
            ),
        )

    def get_bucket_name(self):
        """Get reference to the bucket name."""
        return Ref(self.bucket)
