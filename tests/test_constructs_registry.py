"""
Tests for content-addressed image publishing.
"""

from pathlib import Path

import pytest
from troposphere import Sub, Template

from infra_demo.constructs.registry import (
    DEFAULT_REGISTRY,
    BuildAction,
    ImagePublisher,
    ImageReference,
    hash_source_tree,
)


@pytest.fixture
def source_tree(tmp_path: Path) -> Path:
    root = tmp_path / "backend"
    (root / "src").mkdir(parents=True)
    (root / "Dockerfile").write_text("FROM python:3.12-slim\n")
    (root / "src" / "app.py").write_text("print('hello')\n")
    return root


class TestHashSourceTree:
    """Test directory hashing."""

    def test_deterministic(self, source_tree: Path) -> None:
        """Test that an unchanged tree always hashes the same."""
        assert hash_source_tree(source_tree) == hash_source_tree(source_tree)
        assert len(hash_source_tree(source_tree)) == 64

    def test_byte_change(self, source_tree: Path) -> None:
        """Test that a one byte edit changes the digest."""
        before = hash_source_tree(source_tree)
        (source_tree / "src" / "app.py").write_text("print('hellp')\n")
        assert hash_source_tree(source_tree) != before

    def test_rename_changes_digest(self, source_tree: Path) -> None:
        """Test that moving a file changes the digest."""
        before = hash_source_tree(source_tree)
        (source_tree / "src" / "app.py").rename(source_tree / "src" / "main.py")
        assert hash_source_tree(source_tree) != before

    def test_new_file_changes_digest(self, source_tree: Path) -> None:
        """Test that adding an empty file changes the digest."""
        before = hash_source_tree(source_tree)
        (source_tree / "empty.txt").write_text("")
        assert hash_source_tree(source_tree) != before

    def test_ignored_directories(self, source_tree: Path) -> None:
        """Test that generated templates and caches leave the digest alone."""
        before = hash_source_tree(source_tree)
        (source_tree / ".infra-demo").mkdir()
        (source_tree / ".infra-demo" / "generated-template-dev.yaml").write_text("Resources: {}\n")
        (source_tree / "src" / "__pycache__").mkdir()
        (source_tree / "src" / "__pycache__" / "app.cpython-312.pyc").write_bytes(b"\0")
        assert hash_source_tree(source_tree) == before

    def test_independent_of_location(self, source_tree: Path, tmp_path: Path) -> None:
        """Test that copies of a tree in different places hash the same."""
        copy = tmp_path / "copy"
        (copy / "src").mkdir(parents=True)
        (copy / "Dockerfile").write_bytes((source_tree / "Dockerfile").read_bytes())
        (copy / "src" / "app.py").write_bytes((source_tree / "src" / "app.py").read_bytes())

        assert hash_source_tree(copy) == hash_source_tree(source_tree)

    def test_single_file(self, source_tree: Path) -> None:
        """Test hashing a single file."""
        assert len(hash_source_tree(source_tree / "Dockerfile")) == 64

    def test_missing_path(self, tmp_path: Path) -> None:
        """Test that a missing source path raises."""
        with pytest.raises(FileNotFoundError):
            hash_source_tree(tmp_path / "missing")


class TestImageReference:
    """Test ImageReference dataclass."""

    def test_tag(self) -> None:
        """Test tag composition."""
        image = ImageReference(repository="registry.example.com/backend", content_hash="abc123")
        assert image.tag == "registry.example.com/backend:abc123"
        assert image.to_template_value() == "registry.example.com/backend:abc123"

    def test_template_value_with_pseudo_parameters(self) -> None:
        """Test that unresolved registries become Sub expressions."""
        image = ImageReference(repository=f"{DEFAULT_REGISTRY}/backend", content_hash="abc123")
        assert isinstance(image.to_template_value(), Sub)


class TestImagePublisher:
    """Test ImagePublisher class."""

    def test_publish_with_account(self, source_tree: Path) -> None:
        """Test publishing with a concrete registry."""
        template = Template()
        publisher = ImagePublisher(
            template, {"account_id": "123456789012", "region": "us-east-1"}, "test"
        )

        published = publisher.publish("backend", source_tree)

        content_hash = hash_source_tree(source_tree)
        assert published.tag == (
            f"123456789012.dkr.ecr.us-east-1.amazonaws.com/backend:{content_hash}"
        )
        assert published.build_action.repository_name == "backend"
        assert published.build_action.context == source_tree.resolve()
        assert published.build_action.image.content_hash == content_hash
        assert template.outputs["BackendImage"].Value == published.tag
        assert publisher.published["backend"] == published

    def test_publish_without_account(self, source_tree: Path) -> None:
        """Test that the registry falls back to pseudo parameters."""
        template = Template()
        publisher = ImagePublisher(template, {}, "test")

        published = publisher.publish("backend", source_tree)

        assert published.tag.startswith("${AWS::AccountId}.dkr.ecr.${AWS::Region}")
        assert isinstance(template.outputs["BackendImage"].Value, Sub)

    def test_explicit_registry(self, source_tree: Path) -> None:
        """Test an explicit registry host."""
        publisher = ImagePublisher(Template(), {}, "test", registry="localhost:5000")
        published = publisher.publish("backend", source_tree)
        assert published.tag.startswith("localhost:5000/backend:")

    def test_same_tree_same_tag(self, source_tree: Path) -> None:
        """Test that publishing an unchanged tree twice yields one tag."""
        first = ImagePublisher(Template(), {}, "test").publish("backend", source_tree)
        second = ImagePublisher(Template(), {}, "test").publish("backend", source_tree)
        assert first.tag == second.tag
        assert first.build_action == second.build_action

    def test_invalid_name(self, source_tree: Path) -> None:
        """Test that invalid repository names are rejected."""
        publisher = ImagePublisher(Template(), {}, "test")
        with pytest.raises(ValueError, match="Invalid repository name"):
            publisher.publish("Backend_App", source_tree)

    def test_build_action_describe(self) -> None:
        """Test build action metadata."""
        action = BuildAction(
            name="backend",
            repository_name="backend",
            context=Path("/src"),
            image=ImageReference("registry/backend", "abc"),
        )
        assert action.describe() == {
            "Name": "backend",
            "Repository": "backend",
            "ContentHash": "abc",
        }
