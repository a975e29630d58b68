"""
API layer construct: shared Lambda + HTTP API routes.

A single Lambda keeps warm caches and reduces cold start costs.
Uses Docker bundling for dependencies (runs in CI/CD pipeline).
"""

from typing import Dict

from aws_cdk import (
    BundlingOptions,
    Duration,
    aws_ec2 as ec2,
    aws_lambda as _lambda,
    aws_apigatewayv2 as apigw,
    aws_apigatewayv2_integrations as integrations,
    aws_logs as logs,
)
from constructs import Construct


def bundled_source() -> _lambda.Code:
    """Lambda asset for src/ with requirements-lambda.txt installed alongside."""
    return _lambda.Code.from_asset(
        "src",
        bundling=BundlingOptions(
            image=_lambda.Runtime.PYTHON_3_12.bundling_image,
            command=[
                "bash", "-c",
                "pip install -r requirements-lambda.txt -t /asset-output && "
                "cp -r . /asset-output"
            ],
        ),
    )


class ApiLayerConstruct(Construct):
    """Expose ticketing endpoints via HTTP API."""

    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        *,
        environment: str,
        vpc: ec2.IVpc,
        code: _lambda.Code,
        shared_env: Dict[str, str],
        lambda_memory_mb: int = 512,
        lambda_timeout_seconds: int = 30,
    ) -> None:
        super().__init__(scope, construct_id)

        self.main_lambda = _lambda.Function(
            self,
            "ApiHandler",
            runtime=_lambda.Runtime.PYTHON_3_12,
            handler="handlers.main.lambda_handler",
            code=code,
            memory_size=lambda_memory_mb,
            timeout=Duration.seconds(lambda_timeout_seconds),
            architecture=_lambda.Architecture.X86_64,
            vpc=vpc,
            environment=dict(shared_env),
            log_retention=logs.RetentionDays.ONE_WEEK,
        )

        # HTTP API with minimal latency and low cost.
        self.api = apigw.HttpApi(
            self,
            "HttpApi",
            api_name=f"helpdesk-api-{environment}",
            cors_preflight=apigw.CorsPreflightOptions(
                allow_origins=["*"],
                allow_methods=[apigw.CorsHttpMethod.ANY],
            ),
        )

        integration = integrations.HttpLambdaIntegration(
            "LambdaIntegration", self.main_lambda
        )

        route_defs = [
            (apigw.HttpMethod.GET, "/health"),
            (apigw.HttpMethod.POST, "/tickets"),
            (apigw.HttpMethod.GET, "/tickets"),
            (apigw.HttpMethod.GET, "/tickets/{id}"),
            (apigw.HttpMethod.POST, "/tickets/{id}/assign"),
            (apigw.HttpMethod.POST, "/tickets/{id}/claim"),
            (apigw.HttpMethod.POST, "/tickets/{id}/auto-assign"),
            (apigw.HttpMethod.POST, "/tickets/{id}/status"),
            (apigw.HttpMethod.POST, "/tickets/{id}/close"),
            (apigw.HttpMethod.POST, "/tickets/{id}/feedback"),
            (apigw.HttpMethod.POST, "/tickets/{id}/time"),
            (apigw.HttpMethod.GET, "/tickets/{id}/messages"),
            (apigw.HttpMethod.POST, "/tickets/{id}/messages"),
            (apigw.HttpMethod.POST, "/tickets/{id}/messages/{message_id}/read"),
        ]

        for method, path in route_defs:
            self.api.add_routes(
                path=path,
                methods=[method],
                integration=integration,
            )
