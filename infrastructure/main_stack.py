"""
Main CDK Stack for the helpdesk ticket lifecycle engine.
"""

from aws_cdk import (
    Stack,
    Tags,
    CfnOutput,
)
from constructs import Construct

from infrastructure.constructs.data_layer import DataLayerConstruct
from infrastructure.constructs.api_layer import ApiLayerConstruct, bundled_source
from infrastructure.constructs.event_pipeline import EventPipelineConstruct
from infrastructure.config.settings import Settings


class HelpdeskStack(Stack):
    """Main stack wiring all constructs together."""

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
        Tags.of(self).add("Project", "helpdesk-lifecycle-engine")
        Tags.of(self).add("Environment", settings.environment)
        Tags.of(self).add("CostCenter", "support-operations")
        Tags.of(self).add("ManagedBy", "cdk")

        # 1) Data layer (VPC, tables, reporting DB).
        data_construct = DataLayerConstruct(
            self,
            "DataLayer",
            environment=settings.environment,
            db_instance_class=settings.db_instance_class,
            db_allocated_storage=settings.db_allocated_storage,
        )

        code = bundled_source()
        shared_env = {
            "ENVIRONMENT": settings.environment,
            "EVENT_DELIVERY": "stream",
            "SLA_RESPONSE_HOURS": settings.sla_response_hours,
            "AUTO_CLOSE_AFTER_DAYS": str(settings.auto_close_after_days),
            "METRICS_TIMEZONE": settings.metrics_timezone,
            **data_construct.table_environment(),
        }

        # 2) Event pipeline (stream consumer, schedules, notification topic).
        event_construct = EventPipelineConstruct(
            self,
            "EventPipeline",
            environment=settings.environment,
            vpc=data_construct.vpc,
            code=code,
            shared_env=shared_env,
            tickets_table=data_construct.tickets_table,
            schedules=settings.schedules,
            sweep_timeout_seconds=settings.sweep_timeout_seconds,
            retry_attempts=settings.sweep_retry_attempts,
        )

        # 3) API layer (single Lambda).
        api_construct = ApiLayerConstruct(
            self,
            "ApiLayer",
            environment=settings.environment,
            vpc=data_construct.vpc,
            code=code,
            shared_env={**shared_env, "NOTIFICATION_TOPIC_ARN": event_construct.topic.topic_arn},
            lambda_memory_mb=settings.lambda_memory_mb,
            lambda_timeout_seconds=settings.lambda_timeout_seconds,
        )

        # Permissions: every engine Lambda reads/writes the tables, the DB secret and the topic.
        for fn in [api_construct.main_lambda, *event_construct.functions]:
            for table in data_construct.tables:
                table.grant_read_write_data(fn)
            data_construct.db_secret.grant_read(fn)
            event_construct.topic.grant_publish(fn)
            data_construct.db_instance.connections.allow_default_port_from(fn)

        # Outputs to quickly find resources.
        CfnOutput(self, "ApiEndpoint", value=api_construct.api.api_endpoint)
        CfnOutput(self, "TicketsTable", value=data_construct.tickets_table.table_name)
        CfnOutput(self, "AgentsTable", value=data_construct.agents_table.table_name)
        CfnOutput(self, "NotificationTopicArn", value=event_construct.topic.topic_arn)
        CfnOutput(self, "DbSecretArn", value=data_construct.db_secret.secret_arn)
