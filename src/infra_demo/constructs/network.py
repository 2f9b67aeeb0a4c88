"""
Network constructs for VPC, subnets, and networking resources.
"""

from typing import Any, Dict, List

from troposphere import (
    Export,
    GetAtt,
    Join,
    Output,
    Ref,
    Sub,
    Tags,
    Template,
    ec2,
)


class NetworkConstruct:
    """
    L2 Construct for network infrastructure.
    Creates a VPC with public/private subnets across AZs, a NAT gateway for
    the private subnets and the security groups used by the load balancer and
    the container services behind it.
    """

    def __init__(self, template: Template, config: Dict[str, Any], environment: str):
        """
        Initialize network construct.

        Args:
            template: CloudFormation template to add resources to
            config: Network configuration ("vpc", "subnets", "container_port")
            environment: Deployment environment (dev/staging/prod)
        """
        self.template = template
        self.config = config
        self.environment = environment
        self.resources: Dict[str, Any] = {}

        # Create network resources
        self._create_vpc()
        self._create_subnets()
        self._create_internet_gateway()
        self._create_nat_gateways()
        self._create_route_tables()
        self._create_security_groups()
        self._create_outputs()

    def _create_vpc(self):
        """Create VPC with DNS enabled."""
        vpc_config = self.config.get("vpc", {})

        self.vpc = self.template.add_resource(
            ec2.VPC(
                "VPC",
                CidrBlock=vpc_config.get("cidr", "10.0.0.0/16"),
                EnableDnsHostnames=True,
                EnableDnsSupport=True,
                Tags=Tags(
                    Name=Sub(f"${{AWS::StackName}}-vpc-{self.environment}"),
                    Environment=self.environment,
                ),
            )
        )
        self.resources["vpc"] = self.vpc

    def _create_subnets(self):
        """Create public and private subnets across AZs."""
        self.public_subnets: List[ec2.Subnet] = []
        self.private_subnets: List[ec2.Subnet] = []

        azs = self.config.get("vpc", {}).get("azs", ["a", "b", "c"])
        subnets_config = self.config.get("subnets", {})

        for kind, public in (("public", True), ("private", False)):
            target = self.public_subnets if public else self.private_subnets
            label = "Public" if public else "Private"
            for idx, (az, cidr) in enumerate(zip(azs, subnets_config.get(kind, []))):
                subnet = self.template.add_resource(
                    ec2.Subnet(
                        f"{label}Subnet{idx+1}",
                        VpcId=Ref(self.vpc),
                        CidrBlock=cidr,
                        AvailabilityZone=Sub(f"${{AWS::Region}}{az}"),
                        MapPublicIpOnLaunch=public,
                        Tags=Tags(
                            Name=Sub(f"${{AWS::StackName}}-{kind}-{idx+1}"),
                            Type=kind,
                            Environment=self.environment,
                        ),
                    )
                )
                target.append(subnet)

        if not self.public_subnets:
            raise ValueError("Network needs at least one public subnet")

        self.resources["public_subnets"] = self.public_subnets
        self.resources["private_subnets"] = self.private_subnets

    def _create_internet_gateway(self):
        """Create and attach internet gateway."""
        self.igw = self.template.add_resource(
            ec2.InternetGateway(
                "InternetGateway",
                Tags=Tags(
                    Name=Sub(f"${{AWS::StackName}}-igw"), Environment=self.environment
                ),
            )
        )

        self.gateway_attachment = self.template.add_resource(
            ec2.VPCGatewayAttachment(
                "VPCGatewayAttachment",
                VpcId=Ref(self.vpc),
                InternetGatewayId=Ref(self.igw),
            )
        )

    def _create_nat_gateways(self):
        """Create NAT gateways for private subnet internet access."""
        self.nat_gateways = []
        self.elastic_ips = []

        vpc_config = self.config.get("vpc", {})
        if not vpc_config.get("enable_nat_gateway", True) or not self.private_subnets:
            return

        single_nat = vpc_config.get("single_nat_gateway", True)
        num_nats = 1 if single_nat else len(self.public_subnets)

        for idx in range(num_nats):
            eip = self.template.add_resource(
                ec2.EIP(
                    f"NATGatewayEIP{idx+1}",
                    Domain="vpc",
                    DependsOn=self.gateway_attachment.title,
                    Tags=Tags(
                        Name=Sub(f"${{AWS::StackName}}-nat-eip-{idx+1}"),
                        Environment=self.environment,
                    ),
                )
            )
            self.elastic_ips.append(eip)

            nat = self.template.add_resource(
                ec2.NatGateway(
                    f"NATGateway{idx+1}",
                    AllocationId=GetAtt(eip, "AllocationId"),
                    SubnetId=Ref(self.public_subnets[idx]),
                    Tags=Tags(
                        Name=Sub(f"${{AWS::StackName}}-nat-{idx+1}"),
                        Environment=self.environment,
                    ),
                )
            )
            self.nat_gateways.append(nat)

    def _create_route_tables(self):
        """Create and configure route tables."""
        self.public_route_table = self.template.add_resource(
            ec2.RouteTable(
                "PublicRouteTable",
                VpcId=Ref(self.vpc),
                Tags=Tags(
                    Name=Sub(f"${{AWS::StackName}}-public-rt"),
                    Type="public",
                    Environment=self.environment,
                ),
            )
        )

        self.template.add_resource(
            ec2.Route(
                "PublicRoute",
                RouteTableId=Ref(self.public_route_table),
                DestinationCidrBlock="0.0.0.0/0",
                GatewayId=Ref(self.igw),
                DependsOn=self.gateway_attachment.title,
            )
        )

        for idx, subnet in enumerate(self.public_subnets):
            self.template.add_resource(
                ec2.SubnetRouteTableAssociation(
                    f"PublicSubnetRouteTableAssociation{idx+1}",
                    SubnetId=Ref(subnet),
                    RouteTableId=Ref(self.public_route_table),
                )
            )

        self.private_route_tables = []
        for idx, private_subnet in enumerate(self.private_subnets):
            # Subnets share the route table of their NAT gateway; without NAT
            # they all share one table with no default route
            nat_idx = min(idx, max(len(self.nat_gateways), 1) - 1)
            if nat_idx < len(self.private_route_tables):
                rt = self.private_route_tables[nat_idx]
            else:
                rt = self.template.add_resource(
                    ec2.RouteTable(
                        f"PrivateRouteTable{len(self.private_route_tables)+1}",
                        VpcId=Ref(self.vpc),
                        Tags=Tags(
                            Name=Sub(
                                f"${{AWS::StackName}}-private-rt-{len(self.private_route_tables)+1}"
                            ),
                            Type="private",
                            Environment=self.environment,
                        ),
                    )
                )
                if self.nat_gateways:
                    self.template.add_resource(
                        ec2.Route(
                            f"PrivateRoute{len(self.private_route_tables)+1}",
                            RouteTableId=Ref(rt),
                            DestinationCidrBlock="0.0.0.0/0",
                            NatGatewayId=Ref(self.nat_gateways[nat_idx]),
                        )
                    )
                self.private_route_tables.append(rt)

            self.template.add_resource(
                ec2.SubnetRouteTableAssociation(
                    f"PrivateSubnetRouteTableAssociation{idx+1}",
                    SubnetId=Ref(private_subnet),
                    RouteTableId=Ref(rt),
                )
            )

    def _create_security_groups(self):
        """Create security groups for the load balancer and its services."""
        container_port = self.config.get("container_port", 80)

        self.load_balancer_sg = self.template.add_resource(
            ec2.SecurityGroup(
                "LoadBalancerSecurityGroup",
                GroupDescription="Public HTTP access to the load balancer",
                VpcId=Ref(self.vpc),
                SecurityGroupIngress=[
                    ec2.SecurityGroupRule(
                        IpProtocol="tcp",
                        FromPort=80,
                        ToPort=80,
                        CidrIp="0.0.0.0/0",
                        Description="Allow HTTP from anywhere",
                    )
                ],
                Tags=Tags(
                    Name=Sub(f"${{AWS::StackName}}-lb-sg"),
                    Environment=self.environment,
                ),
            )
        )

        self.service_sg = self.template.add_resource(
            ec2.SecurityGroup(
                "ServiceSecurityGroup",
                GroupDescription="Container services behind the load balancer",
                VpcId=Ref(self.vpc),
                SecurityGroupIngress=[
                    ec2.SecurityGroupRule(
                        IpProtocol="tcp",
                        FromPort=container_port,
                        ToPort=container_port,
                        SourceSecurityGroupId=Ref(self.load_balancer_sg),
                        Description="Allow traffic from the load balancer",
                    )
                ],
                SecurityGroupEgress=[
                    ec2.SecurityGroupRule(
                        IpProtocol="-1",
                        CidrIp="0.0.0.0/0",
                        Description="Allow all outbound traffic",
                    )
                ],
                Tags=Tags(
                    Name=Sub(f"${{AWS::StackName}}-service-sg"),
                    Environment=self.environment,
                ),
            )
        )

        self.resources["load_balancer_security_group"] = self.load_balancer_sg
        self.resources["service_security_group"] = self.service_sg

    def _create_outputs(self):
        """Create CloudFormation outputs."""
        outputs = [
            ("VPCId", Ref(self.vpc), "VPC ID"),
            (
                "PublicSubnetIds",
                Join(",", [Ref(s) for s in self.public_subnets]),
                "Public subnet IDs",
            ),
        ]
        if self.private_subnets:
            outputs.append(
                (
                    "PrivateSubnetIds",
                    Join(",", [Ref(s) for s in self.private_subnets]),
                    "Private subnet IDs",
                )
            )

        for name, value, description in outputs:
            self.template.add_output(
                Output(
                    name,
                    Value=value,
                    Description=description,
                    Export=Export(Sub(f"${{AWS::StackName}}-{name}")),
                )
            )

    def get_public_subnet_ids(self):
        """Get public subnet IDs."""
        return [Ref(subnet) for subnet in self.public_subnets]

    def get_private_subnet_ids(self):
        """Get private subnet IDs."""
        return [Ref(subnet) for subnet in self.private_subnets]

    def get_vpc_id(self):
        """Get VPC ID."""
        return Ref(self.vpc)
