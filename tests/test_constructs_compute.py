"""
Tests for compute constructs.
"""

from pathlib import Path

import pytest
from troposphere import GetAtt, Ref, Sub, Template

from infra_demo.constructs.compute import ComputeCluster
from infra_demo.constructs.registry import DEFAULT_REGISTRY, BuildAction, ImageReference


def make_action(content_hash: str = "abc123") -> BuildAction:
    return BuildAction(
        name="backend",
        repository_name="backend",
        context=Path("/src/backend"),
        image=ImageReference(f"{DEFAULT_REGISTRY}/backend", content_hash),
    )


class TestComputeCluster:
    """Test ComputeCluster class."""

    def setup_method(self):
        """Set up test fixtures."""
        self.template = Template()
        self.config = {
            "task": {"cpu": 256, "memory": 512, "container_port": 80},
            "monitoring": {"log_retention_days": 14},
        }
        self.cluster = ComputeCluster(self.template, self.config, "test", "demo-test")

    def test_cluster(self) -> None:
        """Test the ECS cluster and its outputs."""
        assert self.cluster.cluster.ClusterName == "demo-test"
        assert self.cluster.cluster.CapacityProviders == ["FARGATE"]
        assert "ClusterName" in self.template.outputs
        assert "ClusterArn" in self.template.outputs

    def test_run_task_definition(self) -> None:
        """Test the declared task definition."""
        handle = self.cluster.run("backend", "nginx:latest")
        task = handle.task_definition

        assert task.Family == "backend"
        assert task.Cpu == "256"
        assert task.Memory == "512"
        assert task.RequiresCompatibilities == ["FARGATE", "EC2"]
        assert task.NetworkMode == "awsvpc"
        assert isinstance(task.ExecutionRoleArn, GetAtt)
        assert isinstance(task.TaskRoleArn, GetAtt)

        container = task.ContainerDefinitions[0]
        assert container.Name == "backend"
        assert container.Image == "nginx:latest"
        assert container.PortMappings[0].ContainerPort == 80
        assert container.PortMappings[0].HostPort == 80

    def test_run_sets_port_variable(self) -> None:
        """Test that PORT is always set to the container port."""
        handle = self.cluster.run("backend", "nginx:latest")
        container = handle.task_definition.ContainerDefinitions[0]

        env = {e.Name: e.Value for e in container.Environment}
        assert env == {"PORT": "80"}
        assert handle.environment == {"PORT": "80"}

    def test_run_merges_environment(self) -> None:
        """Test caller-provided variables."""
        handle = self.cluster.run("backend", "nginx:latest", env={"STAGE": "test"})
        assert handle.environment == {"PORT": "80", "STAGE": "test"}

    def test_run_rejects_non_string_environment(self) -> None:
        """Test that environment values must be strings."""
        with pytest.raises(ValueError, match="must be a string"):
            self.cluster.run("backend", "nginx:latest", env={"WORKERS": 4})

    def test_run_creates_roles_and_logs(self) -> None:
        """Test supporting IAM roles and the log group."""
        handle = self.cluster.run("backend", "nginx:latest")

        resources = self.template.resources
        assert "BackendExecutionRole" in resources
        assert "BackendTaskRole" in resources
        assert "BackendTask" in resources

        execution_policy = resources["BackendExecutionRole"].Policies[0]
        assert resources["BackendExecutionRole"].RoleName == "demo-test-backend-execution-role"
        assert execution_policy.PolicyName == "allow-ecr-pull"
        assert "ecr:BatchGetImage" in execution_policy.PolicyDocument["Statement"][0]["Action"]

        assert handle.log_group.LogGroupName == "demo-test/backend"
        assert handle.log_group.RetentionInDays == 14

        log_config = handle.task_definition.ContainerDefinitions[0].LogConfiguration
        assert log_config.LogDriver == "awslogs"
        assert log_config.Options["awslogs-stream-prefix"] == "backend"
        assert isinstance(log_config.Options["awslogs-group"], Ref)

    def test_run_with_image_reference(self) -> None:
        """Test that unresolved image references become Sub expressions."""
        action = make_action()
        handle = self.cluster.run("backend", action.image, dependency=action)

        container = handle.task_definition.ContainerDefinitions[0]
        assert isinstance(container.Image, Sub)
        assert handle.image == action.image

    def test_run_with_tag_string_placeholders(self) -> None:
        """Test that tag strings with pseudo parameters become Sub expressions."""
        handle = self.cluster.run("backend", make_action().image.tag)
        assert isinstance(handle.task_definition.ContainerDefinitions[0].Image, Sub)

    def test_dependency_recorded(self) -> None:
        """Test that build dependencies are carried on the task."""
        action = make_action()
        handle = self.cluster.run("backend", action.image.tag, dependency=action)

        assert handle.depends_on == [action]
        assert handle.task_definition.Metadata == {
            "ImageBuilds": [{"Name": "backend", "Repository": "backend", "ContentHash": "abc123"}]
        }

    def test_no_dependency(self) -> None:
        """Test tasks without build dependencies."""
        handle = self.cluster.run("backend", "nginx:latest")
        assert handle.depends_on == []
        assert self.cluster.build_actions == []

    def test_build_actions_deduplicated(self) -> None:
        """Test that shared build actions are listed once, in order."""
        first = make_action("first")
        second = make_action("second")

        self.cluster.run("backend", first.image.tag, dependency=first)
        self.cluster.run("worker", first.image.tag, dependency=[first, second])

        assert self.cluster.build_actions == [first, second]

    def test_defaults(self) -> None:
        """Test sizing defaults when the config is empty."""
        cluster = ComputeCluster(Template(), {}, "test", "demo")
        handle = cluster.run("backend", "nginx:latest")

        assert handle.cpu == 256
        assert handle.memory == 512
        assert handle.container_port == 80
