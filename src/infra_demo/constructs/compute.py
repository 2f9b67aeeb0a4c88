"""
Compute constructs for ECS clusters and container task definitions.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Union

from troposphere import GetAtt, Output, Export, Ref, Sub, Tags, Template
from troposphere import ecs, iam, logs

from ..naming import NamingConvention, get_resource_name
from .registry import BuildAction, ImageReference

ASSUME_ROLE_POLICY = {
    "Version": "2012-10-17",
    "Statement": [{
        "Effect": "Allow",
        "Principal": {"Service": ["ecs-tasks.amazonaws.com"]},
        "Action": ["sts:AssumeRole"]
    }]
}


@dataclass
class TaskHandle:
    """A declared task definition, ready to be placed behind a load balancer."""

    name: str
    task_definition: ecs.TaskDefinition
    image: Union[str, ImageReference]
    cluster: ecs.Cluster
    container_port: int
    cpu: int
    memory: int
    environment: Dict[str, str]
    log_group: logs.LogGroup
    depends_on: List[BuildAction] = field(default_factory=list)


class ComputeCluster:
    """
    L2 Construct for a container-orchestration cluster.
    Creates an ECS cluster on Fargate and, per ``run`` call, the roles, log
    group and task definition for one container image.
    """

    def __init__(
        self,
        template: Template,
        config: Dict[str, Any],
        environment: str,
        name: str,
    ):
        """
        Initialize compute cluster.

        Args:
            template: CloudFormation template to add resources to
            config: Compute configuration ("task", "monitoring")
            environment: Deployment environment (dev/staging/prod)
            name: Cluster name
        """
        self.template = template
        self.config = config
        self.environment = environment
        self.name = name
        self.resources: Dict[str, Any] = {}
        self.tasks: Dict[str, TaskHandle] = {}

        self._create_cluster()
        self._create_outputs()

    def _create_cluster(self):
        """Create the ECS cluster."""
        self.cluster = self.template.add_resource(
            ecs.Cluster(
                "Cluster",
                ClusterName=self.name,
                CapacityProviders=["FARGATE"],
                Tags=Tags(
                    Name=self.name,
                    Environment=self.environment
                )
            )
        )
        self.resources["cluster"] = self.cluster

    def _create_outputs(self):
        """Create CloudFormation outputs for cross-stack references."""
        outputs = {
            "ClusterName": (Ref(self.cluster), "ECS cluster name"),
            "ClusterArn": (GetAtt(self.cluster, "Arn"), "ECS cluster ARN"),
        }

        for name, (value, description) in outputs.items():
            self.template.add_output(Output(
                name,
                Value=value,
                Description=description,
                Export=Export(Sub(f"${{AWS::StackName}}-{name}"))
            ))

    def _create_execution_role(self, name: str) -> iam.Role:
        """Role assumed by the ECS agent to pull the image and ship logs."""
        return self.template.add_resource(
            iam.Role(
                NamingConvention.logical_id(name, "execution-role"),
                RoleName=get_resource_name(f"{self.name}-{name}", "execution-role", "iam_role"),
                AssumeRolePolicyDocument=ASSUME_ROLE_POLICY,
                Policies=[
                    iam.Policy(
                        PolicyName="allow-ecr-pull",
                        PolicyDocument={
                            "Version": "2012-10-17",
                            "Statement": [{
                                "Effect": "Allow",
                                "Action": [
                                    "ecr:GetAuthorizationToken",
                                    "ecr:BatchCheckLayerAvailability",
                                    "ecr:GetDownloadUrlForLayer",
                                    "ecr:BatchGetImage",
                                    "logs:CreateLogStream",
                                    "logs:PutLogEvents"
                                ],
                                "Resource": "*"
                            }]
                        }
                    )
                ],
                Tags=Tags(
                    Name=get_resource_name(f"{self.name}-{name}", "execution-role", "iam_role"),
                    Environment=self.environment
                )
            )
        )

    def _create_task_role(self, name: str) -> iam.Role:
        """Role assumed by the running container."""
        return self.template.add_resource(
            iam.Role(
                NamingConvention.logical_id(name, "task-role"),
                RoleName=get_resource_name(f"{self.name}-{name}", "task-role", "iam_role"),
                AssumeRolePolicyDocument=ASSUME_ROLE_POLICY,
                Policies=[
                    iam.Policy(
                        PolicyName="allow-logs",
                        PolicyDocument={
                            "Version": "2012-10-17",
                            "Statement": [{
                                "Effect": "Allow",
                                "Action": ["logs:CreateLogStream", "logs:PutLogEvents"],
                                "Resource": "*"
                            }]
                        }
                    )
                ],
                Tags=Tags(
                    Name=get_resource_name(f"{self.name}-{name}", "task-role", "iam_role"),
                    Environment=self.environment
                )
            )
        )

    def _create_log_group(self, name: str) -> logs.LogGroup:
        """Create CloudWatch log group for the container."""
        retention_days = self.config.get("monitoring", {}).get("log_retention_days", 30)

        return self.template.add_resource(
            logs.LogGroup(
                NamingConvention.logical_id(name, "log-group"),
                LogGroupName=f"{self.name}/{name}",
                RetentionInDays=retention_days,
                Tags=Tags(
                    Name=f"{self.name}/{name}",
                    Environment=self.environment
                )
            )
        )

    def run(
        self,
        name: str,
        tag: Union[str, ImageReference],
        dependency: Optional[Union[BuildAction, Sequence[BuildAction]]] = None,
        env: Optional[Dict[str, str]] = None,
    ) -> TaskHandle:
        """
        Declare a task definition running ``tag`` inside this cluster.

        Args:
            name: Task name, also the container name
            tag: Image tag, or the ImageReference it was derived from
            dependency: Build action(s) that must complete before the task
                can be scheduled
            env: Extra environment variables for the container

        Returns:
            TaskHandle for ``LoadBalancer.expose``
        """
        task_config = self.config.get("task", {})
        cpu = task_config.get("cpu", 256)
        memory = task_config.get("memory", 512)
        container_port = task_config.get("container_port", 80)

        environment = {"PORT": str(container_port)}
        for key, value in (env or {}).items():
            if not isinstance(value, str):
                raise ValueError(
                    f"Environment variable {key} must be a string, got {type(value).__name__}"
                )
            environment[key] = value

        if dependency is None:
            depends_on: List[BuildAction] = []
        elif isinstance(dependency, BuildAction):
            depends_on = [dependency]
        else:
            depends_on = list(dependency)

        if isinstance(tag, ImageReference):
            image = tag.to_template_value()
        elif "${" in tag:
            image = Sub(tag)
        else:
            image = tag

        execution_role = self._create_execution_role(name)
        task_role = self._create_task_role(name)
        log_group = self._create_log_group(name)

        # https://docs.aws.amazon.com/AmazonECS/latest/developerguide/using_awslogs.html
        container = ecs.ContainerDefinition(
            Name=name,
            Image=image,
            Cpu=cpu,
            Memory=memory,
            Essential=True,
            Environment=[
                ecs.Environment(Name=key, Value=value)
                for key, value in environment.items()
            ],
            PortMappings=[
                ecs.PortMapping(
                    ContainerPort=container_port,
                    HostPort=container_port,
                    Protocol="tcp"
                )
            ],
            LogConfiguration=ecs.LogConfiguration(
                LogDriver="awslogs",
                Options={
                    "awslogs-group": Ref(log_group),
                    "awslogs-region": Ref("AWS::Region"),
                    "awslogs-stream-prefix": name
                }
            )
        )

        task_definition = ecs.TaskDefinition(
            NamingConvention.logical_id(name, "task"),
            Family=name,
            Cpu=str(cpu),
            Memory=str(memory),
            RequiresCompatibilities=["FARGATE", "EC2"],
            NetworkMode="awsvpc",
            ExecutionRoleArn=GetAtt(execution_role, "Arn"),
            TaskRoleArn=GetAtt(task_role, "Arn"),
            ContainerDefinitions=[container],
            Tags=Tags(
                Name=name,
                Environment=self.environment
            )
        )
        if depends_on:
            task_definition.Metadata = {
                "ImageBuilds": [action.describe() for action in depends_on]
            }
        self.template.add_resource(task_definition)

        handle = TaskHandle(
            name=name,
            task_definition=task_definition,
            image=tag,
            cluster=self.cluster,
            container_port=container_port,
            cpu=cpu,
            memory=memory,
            environment=environment,
            log_group=log_group,
            depends_on=depends_on,
        )
        self.tasks[name] = handle
        self.resources[f"{name}_task_definition"] = task_definition
        return handle

    def get_cluster_name(self):
        """Get ECS cluster name."""
        return Ref(self.cluster)

    @property
    def build_actions(self) -> List[BuildAction]:
        """Build actions the declared tasks depend on, in declaration order."""
        actions: List[BuildAction] = []
        for handle in self.tasks.values():
            for action in handle.depends_on:
                if action not in actions:
                    actions.append(action)
        return actions
