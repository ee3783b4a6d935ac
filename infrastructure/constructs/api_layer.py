"""
API layer construct: shared Lambda + HTTP API routes.

A single Lambda keeps the policy cache warm across routes.
Uses Docker bundling for dependencies (runs in CI/CD pipeline).
"""

from aws_cdk import (
    BundlingOptions,
    Duration,
    aws_lambda as _lambda,
    aws_apigatewayv2 as apigw,
    aws_apigatewayv2_integrations as integrations,
    aws_logs as logs,
)
from constructs import Construct

ROUTES = (
    (apigw.HttpMethod.GET, "/health"),
    (apigw.HttpMethod.POST, "/scans"),
    (apigw.HttpMethod.POST, "/tickets/validate"),
    (apigw.HttpMethod.GET, "/tickets/{code}"),
    (apigw.HttpMethod.GET, "/tickets/{code}/attempts"),
    (apigw.HttpMethod.POST, "/payloads/decode"),
)


class ApiLayerConstruct(Construct):
    """Expose the admission endpoints via HTTP API."""

    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        *,
        environment: str,
        tickets_table_name: str,
        max_scan_count: int,
        scan_window_days: int,
        ticket_code_prefix: str,
        policy_reload_seconds: int,
        ledger_lock_timeout_seconds: int,
        lambda_memory_mb: int = 256,
        lambda_timeout_seconds: int = 10,
    ) -> None:
        super().__init__(scope, construct_id)

        # Bundle Lambda code with dependencies using Docker (works in CI/CD)
        # src/ is the bundle root, so the handler is "handlers.main".
        bundled_code = _lambda.Code.from_asset(
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

        self.main_lambda = _lambda.Function(
            self,
            "ApiHandler",
            runtime=_lambda.Runtime.PYTHON_3_12,
            handler="handlers.main.lambda_handler",
            code=bundled_code,
            memory_size=lambda_memory_mb,
            timeout=Duration.seconds(lambda_timeout_seconds),
            architecture=_lambda.Architecture.X86_64,
            environment={
                "ENVIRONMENT": environment,
                "LEDGER_BACKEND": "dynamodb",
                "TICKETS_TABLE": tickets_table_name,
                "MAX_SCAN_COUNT": str(max_scan_count),
                "SCAN_WINDOW_DAYS": str(scan_window_days),
                "TICKET_CODE_PREFIX": ticket_code_prefix,
                "POLICY_RELOAD_SECONDS": str(policy_reload_seconds),
                "LEDGER_LOCK_TIMEOUT_SECONDS": str(ledger_lock_timeout_seconds),
            },
            log_retention=logs.RetentionDays.ONE_WEEK,
        )

        # HTTP API with minimal latency and low cost.
        self.api = apigw.HttpApi(
            self,
            "HttpApi",
            api_name=f"ticket-admission-api-{environment}",
            cors_preflight=apigw.CorsPreflightOptions(
                allow_origins=["*"],
                allow_methods=[apigw.CorsHttpMethod.GET, apigw.CorsHttpMethod.POST],
            ),
        )

        integration = integrations.HttpLambdaIntegration(
            "LambdaIntegration", self.main_lambda
        )

        for method, path in ROUTES:
            self.api.add_routes(
                path=path,
                methods=[method],
                integration=integration,
            )
