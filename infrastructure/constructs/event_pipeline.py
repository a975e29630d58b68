"""
Event pipeline: tickets stream -> event Lambda, EventBridge schedules -> sweep Lambdas,
and the SNS topic every notification goes through.
"""

from typing import Dict

from aws_cdk import (
    Duration,
    aws_dynamodb as dynamodb,
    aws_ec2 as ec2,
    aws_events as events,
    aws_events_targets as targets,
    aws_lambda as _lambda,
    aws_lambda_event_sources as event_sources,
    aws_logs as logs,
    aws_sns as sns,
)
from constructs import Construct

SWEEP_HANDLERS = {
    "auto_close": "handlers.sweeps.auto_close_handler",
    "sla_warning": "handlers.sweeps.sla_warning_handler",
    "customer_reminder": "handlers.sweeps.customer_reminder_handler",
    "daily_rollup": "handlers.sweeps.daily_rollup_handler",
}


class EventPipelineConstruct(Construct):
    """Wire ticket changes and schedules to the engine."""

    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        *,
        environment: str,
        vpc: ec2.IVpc,
        code: _lambda.Code,
        shared_env: Dict[str, str],
        tickets_table: dynamodb.ITable,
        schedules: Dict[str, Dict[str, str]],
        sweep_timeout_seconds: int = 300,
        retry_attempts: int = 2,
    ) -> None:
        super().__init__(scope, construct_id)

        # Notifications fan out from here; subscribers filter on the `channel` attribute.
        self.topic = sns.Topic(
            self,
            "Notifications",
            topic_name=f"helpdesk-notifications-{environment}",
        )
        env = {**shared_env, "NOTIFICATION_TOPIC_ARN": self.topic.topic_arn}

        self.events_lambda = _lambda.Function(
            self,
            "TicketEventsHandler",
            runtime=_lambda.Runtime.PYTHON_3_12,
            handler="handlers.ticket_events.lambda_handler",
            code=code,
            timeout=Duration.seconds(60),
            memory_size=256,
            architecture=_lambda.Architecture.X86_64,
            vpc=vpc,
            environment=env,
            log_retention=logs.RetentionDays.ONE_WEEK,
        )
        self.events_lambda.add_event_source(
            event_sources.DynamoEventSource(
                tickets_table,
                starting_position=_lambda.StartingPosition.TRIM_HORIZON,
                batch_size=10,
                bisect_batch_on_error=True,
                retry_attempts=5,
            )
        )

        self.sweep_lambdas: Dict[str, _lambda.Function] = {}
        for job, handler in SWEEP_HANDLERS.items():
            fn = _lambda.Function(
                self,
                f"Sweep-{job}",
                runtime=_lambda.Runtime.PYTHON_3_12,
                handler=handler,
                code=code,
                timeout=Duration.seconds(sweep_timeout_seconds),
                memory_size=256,
                architecture=_lambda.Architecture.X86_64,
                vpc=vpc,
                environment=env,
                log_retention=logs.RetentionDays.ONE_WEEK,
            )
            events.Rule(
                self,
                f"Schedule-{job}",
                schedule=events.Schedule.cron(**schedules[job]),
                targets=[
                    targets.LambdaFunction(
                        fn,
                        retry_attempts=retry_attempts,
                        max_event_age=Duration.hours(1),
                    )
                ],
            )
            self.sweep_lambdas[job] = fn

    @property
    def functions(self):
        return [self.events_lambda, *self.sweep_lambdas.values()]
