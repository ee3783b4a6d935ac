"""
Main CDK Stack for the Ticket Admission service.
"""

from aws_cdk import (
    Stack,
    Tags,
    CfnOutput,
)
from constructs import Construct

from infrastructure.constructs.data_layer import DataLayerConstruct
from infrastructure.constructs.api_layer import ApiLayerConstruct
from infrastructure.config.settings import Settings


class TicketAdmissionStack(Stack):
    """Main stack wiring the ledger table and the API together."""

    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        *,
        settings: Settings,
        **kwargs,
    ) -> None:
        super().__init__(scope, construct_id, **kwargs)

        # Global tags for cost/accounting.
        Tags.of(self).add("Project", "ticket-admission")
        Tags.of(self).add("Environment", settings.environment)
        Tags.of(self).add("ManagedBy", "cdk")

        data_construct = DataLayerConstruct(
            self,
            "DataLayer",
            environment=settings.environment,
        )

        api_construct = ApiLayerConstruct(
            self,
            "ApiLayer",
            environment=settings.environment,
            tickets_table_name=data_construct.tickets_table.table_name,
            max_scan_count=settings.max_scan_count,
            scan_window_days=settings.scan_window_days,
            ticket_code_prefix=settings.ticket_code_prefix,
            policy_reload_seconds=settings.policy_reload_seconds,
            ledger_lock_timeout_seconds=settings.ledger_lock_timeout_seconds,
            lambda_memory_mb=settings.lambda_memory_mb,
            lambda_timeout_seconds=settings.lambda_timeout_seconds,
        )

        data_construct.tickets_table.grant_read_write_data(api_construct.main_lambda)

        CfnOutput(self, "ApiEndpoint", value=api_construct.api.api_endpoint)
        CfnOutput(self, "TicketsTable", value=data_construct.tickets_table.table_name)
