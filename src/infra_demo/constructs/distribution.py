"""
L2 Distribution Construct
Provides a CloudFront distribution in front of the static bucket and the
load balancer
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from troposphere import Export, GetAtt, Output, Ref, Sub, Tags, Template
from troposphere import cloudfront

# AWS managed policies
CACHING_OPTIMIZED = "658327ea-f89d-4fab-a63d-7e88639e58f6"
CACHING_DISABLED = "4135ea2d-6df8-44a3-9df3-4b5a84be39ad"
ALL_VIEWER_EXCEPT_HOST_HEADER = "b689b0a8-53d0-40ab-baf2-68738e2966ac"


@dataclass
class Origin:
    """
    Something the edge can fetch from.

    S3 origins carry an origin access identity; everything else is treated as
    a custom HTTP origin.
    """

    origin_id: str
    domain_name: Any
    origin_access_identity: Optional[Any] = None
    http_port: int = 80

    @property
    def is_s3(self) -> bool:
        return self.origin_access_identity is not None

    def to_cloudfront(self) -> cloudfront.Origin:
        if self.is_s3:
            return cloudfront.Origin(
                Id=self.origin_id,
                DomainName=self.domain_name,
                S3OriginConfig=cloudfront.S3OriginConfig(
                    OriginAccessIdentity=self.origin_access_identity
                )
            )
        # The load balancer listener only speaks HTTP
        return cloudfront.Origin(
            Id=self.origin_id,
            DomainName=self.domain_name,
            CustomOriginConfig=cloudfront.CustomOriginConfig(
                HTTPPort=self.http_port,
                OriginProtocolPolicy="http-only"
            )
        )


class EdgeDistribution:
    """
    L2 Construct for content distribution infrastructure
    Creates a CloudFront distribution with a default origin and any number of
    path-routed origins added afterwards
    """

    def __init__(self, template: Template, config: Dict[str, Any], environment: str,
                 default_origin: Origin):
        """
        Initialize distribution construct

        Args:
            template: CloudFormation template to add resources to
            config: Distribution configuration ("price_class", "comment")
            environment: Deployment environment (dev/staging/prod)
            default_origin: Origin serving requests no behavior matches
        """
        self.template = template
        self.config = config
        self.environment = environment
        self.default_origin = default_origin
        self.origins: List[Origin] = [default_origin]
        self.cache_behaviors: List[cloudfront.CacheBehavior] = []
        self.resources = {}

        self._create_cloudfront_distribution()
        self._create_outputs()

    def _create_cloudfront_distribution(self):
        """Create CloudFront distribution with the default origin"""
        default_cache_behavior = cloudfront.DefaultCacheBehavior(
            TargetOriginId=self.default_origin.origin_id,
            ViewerProtocolPolicy="redirect-to-https",
            AllowedMethods=["GET", "HEAD"],
            CachedMethods=["GET", "HEAD"],
            Compress=True,
            CachePolicyId=CACHING_OPTIMIZED
        )

        # A private bucket answers 403 for missing keys, which is how client-side
        # routes arrive. Error responses are distribution-wide, so a 403 from a
        # path-routed origin is rewritten to index.html as well.
        custom_error_responses = []
        if self.default_origin.is_s3:
            custom_error_responses.append(
                cloudfront.CustomErrorResponse(
                    ErrorCode=403,
                    ResponseCode=200,
                    ResponsePagePath="/index.html",
                    ErrorCachingMinTTL=300
                )
            )

        self.distribution_config = cloudfront.DistributionConfig(
            Enabled=True,
            Comment=Sub(f"${{AWS::StackName}} distribution - {self.environment}"),
            DefaultRootObject="index.html",
            Origins=[self.default_origin.to_cloudfront()],
            DefaultCacheBehavior=default_cache_behavior,
            CacheBehaviors=[],
            CustomErrorResponses=custom_error_responses,
            PriceClass=self.config.get("price_class", "PriceClass_100"),
            ViewerCertificate=cloudfront.ViewerCertificate(
                CloudFrontDefaultCertificate=True
            ),
            HttpVersion="http2"
        )

        self.distribution = self.template.add_resource(
            cloudfront.Distribution(
                "CloudFrontDistribution",
                DistributionConfig=self.distribution_config,
                Tags=Tags(
                    Name=Sub("${AWS::StackName}-distribution"),
                    Environment=self.environment
                )
            )
        )

        self.resources["distribution"] = self.distribution

    def _create_outputs(self):
        """Create CloudFormation outputs for cross-stack references"""
        outputs = {
            "CloudFrontDistributionId": (Ref(self.distribution), "CloudFront distribution ID"),
            "DistributionDomainName": (
                GetAtt(self.distribution, "DomainName"),
                "CloudFront distribution domain name"
            ),
        }

        for name, (value, description) in outputs.items():
            self.template.add_output(
                Output(
                    name,
                    Value=value,
                    Description=description,
                    Export=Export(Sub(f"${{AWS::StackName}}-{name}"))
                )
            )

    def add_origin(self, origin: Origin, path_patterns: List[str]):
        """
        Route requests matching ``path_patterns`` to ``origin``.

        Behaviors are evaluated in the order they were added. Dynamic origins
        are never cached and receive every viewer header except Host, so the
        load balancer still sees its own DNS name.
        """
        if origin.origin_id not in [o.origin_id for o in self.origins]:
            self.origins.append(origin)

        for pattern in path_patterns:
            self.cache_behaviors.append(
                cloudfront.CacheBehavior(
                    PathPattern=pattern,
                    TargetOriginId=origin.origin_id,
                    ViewerProtocolPolicy="redirect-to-https",
                    AllowedMethods=["GET", "HEAD", "OPTIONS", "PUT", "POST", "PATCH", "DELETE"],
                    CachedMethods=["GET", "HEAD"],
                    Compress=True,
                    CachePolicyId=CACHING_DISABLED,
                    OriginRequestPolicyId=ALL_VIEWER_EXCEPT_HOST_HEADER
                )
            )

        self.distribution_config.Origins = [o.to_cloudfront() for o in self.origins]
        self.distribution_config.CacheBehaviors = list(self.cache_behaviors)

    def get_distribution_id(self):
        """Get reference to CloudFront distribution ID"""
        return Ref(self.distribution)

    def get_distribution_domain_name(self):
        """Get reference to CloudFront distribution domain name"""
        return GetAtt(self.distribution, "DomainName")
