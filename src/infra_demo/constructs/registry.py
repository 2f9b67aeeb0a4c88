"""
Container image publishing.

An image is addressed by the content of its build context: the tag is a
SHA-256 over every file under the source path, so an unchanged tree always
resolves to the same image and any change produces a new one.
"""

import hashlib
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, NamedTuple, Optional, Union

from troposphere import Output, Sub, Template

from ..naming import NamingConvention

logger = logging.getLogger(__name__)

# Registry locator resolved by CloudFormation when no account id is configured
DEFAULT_REGISTRY = "${AWS::AccountId}.dkr.ecr.${AWS::Region}.amazonaws.com"

_CHUNK_SIZE = 1024 * 1024

# Tool and VCS state that never belongs in an image
IGNORED_DIRECTORIES = frozenset({".git", ".infra-demo", "__pycache__"})


def hash_source_tree(source_path: Union[str, Path]) -> str:
    """
    Hash the content of a directory tree.

    Files are visited in sorted relative-path order; each contributes its
    relative path and its bytes, so renames, additions, removals and edits
    all change the digest. Files under IGNORED_DIRECTORIES are skipped.

    Args:
        source_path: Directory (or single file) to hash

    Returns:
        Hex encoded SHA-256 digest

    Raises:
        FileNotFoundError: If the source path does not exist
    """
    root = Path(source_path)
    if not root.exists():
        raise FileNotFoundError(f"Image source path not found: {root}")

    files = [root] if root.is_file() else sorted(
        (
            p for p in root.rglob("*")
            if p.is_file()
            and not IGNORED_DIRECTORIES.intersection(p.relative_to(root).parts[:-1])
        ),
        key=lambda p: p.relative_to(root).as_posix(),
    )

    digest = hashlib.sha256()
    for file_path in files:
        relative = file_path.name if file_path == root else file_path.relative_to(root).as_posix()
        digest.update(relative.encode("utf-8"))
        digest.update(b"\0")
        with open(file_path, "rb") as f:
            for chunk in iter(lambda: f.read(_CHUNK_SIZE), b""):
                digest.update(chunk)
        digest.update(b"\0")

    return digest.hexdigest()


@dataclass(frozen=True)
class ImageReference:
    """Resolvable pointer to a built container image."""

    repository: str
    content_hash: str

    @property
    def tag(self) -> str:
        """Full image reference, ``repository:content_hash``."""
        return f"{self.repository}:{self.content_hash}"

    def to_template_value(self) -> Any:
        """Value usable inside the template (pseudo parameters substituted)."""
        if "${" in self.tag:
            return Sub(self.tag)
        return self.tag


@dataclass(frozen=True)
class BuildAction:
    """
    Deferred "authenticate, build, push" step for one image.

    Declared while the template is built and executed by the deployer before
    the stack is created or updated, so the image exists before any task that
    depends on it is scheduled.
    """

    name: str
    repository_name: str
    context: Path
    image: ImageReference

    def describe(self) -> Dict[str, str]:
        """Metadata recorded on resources that depend on this build."""
        return {
            "Name": self.name,
            "Repository": self.repository_name,
            "ContentHash": self.image.content_hash,
        }


class PublishedImage(NamedTuple):
    """Result of publishing an image: its tag and the action producing it."""

    tag: str
    build_action: BuildAction


class ImagePublisher:
    """
    L2 Construct for container images stored in ECR.

    Repositories are created on demand by the build action, so the template
    only carries the image references and their outputs.
    """

    def __init__(
        self,
        template: Template,
        config: Dict[str, Any],
        environment: str,
        registry: Optional[str] = None,
    ):
        """
        Initialize image publisher.

        Args:
            template: CloudFormation template to add outputs to
            config: Registry configuration ("account_id", "region")
            environment: Deployment environment (dev/staging/prod)
            registry: Explicit registry host, overrides the derived one
        """
        self.template = template
        self.config = config
        self.environment = environment
        self.registry = registry or self._default_registry()
        self.published: Dict[str, PublishedImage] = {}

    def _default_registry(self) -> str:
        account_id = self.config.get("account_id")
        region = self.config.get("region")
        if account_id and region:
            return f"{account_id}.dkr.ecr.{region}.amazonaws.com"
        return DEFAULT_REGISTRY

    def publish(self, name: str, source_path: Union[str, Path]) -> PublishedImage:
        """
        Publish the image built from ``source_path`` under ``name``.

        Args:
            name: Repository name (lowercase, digits and hyphens)
            source_path: Docker build context

        Returns:
            PublishedImage(tag, build_action)
        """
        if not NamingConvention.validate_resource_name(name):
            raise ValueError(f"Invalid repository name: {name}")

        context = Path(source_path).resolve()
        content_hash = hash_source_tree(context)
        image = ImageReference(
            repository=f"{self.registry}/{name}",
            content_hash=content_hash,
        )
        action = BuildAction(
            name=name,
            repository_name=name,
            context=context,
            image=image,
        )
        logger.info(f"Image {name} resolved to content hash {content_hash[:12]}")

        self.template.add_output(
            Output(
                NamingConvention.logical_id(name, "image"),
                Value=image.to_template_value(),
                Description=f"Container image for {name}",
            )
        )

        published = PublishedImage(tag=image.tag, build_action=action)
        self.published[name] = published
        return published
