"""
Data layer construct: VPC, ticket tables in DynamoDB, RDS PostgreSQL for reporting.
"""

from aws_cdk import (
    RemovalPolicy,
    Duration,
    aws_ec2 as ec2,
    aws_rds as rds,
    aws_secretsmanager as secretsmanager,
    aws_dynamodb as dynamodb,
)
from constructs import Construct


class DataLayerConstruct(Construct):
    """Provision the ticket store, agent directory and reporting database."""

    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        *,
        environment: str,
        db_instance_class: str,
        db_allocated_storage: int = 20,
    ) -> None:
        super().__init__(scope, construct_id)
        removal = RemovalPolicy.RETAIN if environment == "prod" else RemovalPolicy.DESTROY

        # Shared VPC: no NAT in dev to avoid $30-40/mo; add endpoints instead.
        self.vpc = ec2.Vpc(
            self,
            "Vpc",
            max_azs=2,
            nat_gateways=0 if environment != "prod" else 1,
            subnet_configuration=[
                ec2.SubnetConfiguration(
                    name="Public",
                    subnet_type=ec2.SubnetType.PUBLIC,
                    cidr_mask=24,
                ),
                ec2.SubnetConfiguration(
                    name="Private",
                    subnet_type=ec2.SubnetType.PRIVATE_WITH_EGRESS
                    if environment == "prod"
                    else ec2.SubnetType.PRIVATE_ISOLATED,
                    cidr_mask=24,
                ),
            ],
        )

        # Gateway endpoint for DynamoDB so private subnets reach it without NAT.
        self.vpc.add_gateway_endpoint(
            "DynamoDbEndpoint",
            service=ec2.GatewayVpcEndpointAwsService.DYNAMODB,
        )
        self.vpc.add_interface_endpoint(
            "SnsEndpoint",
            service=ec2.InterfaceVpcEndpointAwsService.SNS,
        )
        self.vpc.add_interface_endpoint(
            "SecretsManagerEndpoint",
            service=ec2.InterfaceVpcEndpointAwsService.SECRETS_MANAGER,
        )

        # Secret for DB credentials (username auto-generated).
        self.db_secret = secretsmanager.Secret(
            self,
            "DbCredentials",
            generate_secret_string=secretsmanager.SecretStringGenerator(
                secret_string_template='{"username": "app_user"}',
                generate_string_key="password",
                exclude_punctuation=True,
            ),
        )

        # RDS instance for the daily metrics rollup (single-AZ outside prod).
        self.db_instance = rds.DatabaseInstance(
            self,
            "Postgres",
            engine=rds.DatabaseInstanceEngine.postgres(
                version=rds.PostgresEngineVersion.VER_16_3
            ),
            vpc=self.vpc,
            vpc_subnets=ec2.SubnetSelection(
                subnet_type=ec2.SubnetType.PRIVATE_WITH_EGRESS
                if environment == "prod"
                else ec2.SubnetType.PRIVATE_ISOLATED
            ),
            instance_type=ec2.InstanceType(db_instance_class),
            credentials=rds.Credentials.from_secret(self.db_secret),
            allocated_storage=db_allocated_storage,
            storage_encrypted=True,
            backup_retention=Duration.days(3 if environment == "prod" else 0),
            multi_az=environment == "prod",
            publicly_accessible=False,
            deletion_protection=environment == "prod",
            removal_policy=removal,
        )

        # Tickets: the stream feeds ticket_created / ticket_updated events.
        self.tickets_table = dynamodb.Table(
            self,
            "Tickets",
            partition_key=dynamodb.Attribute(name="id", type=dynamodb.AttributeType.STRING),
            billing_mode=dynamodb.BillingMode.PAY_PER_REQUEST,
            stream=dynamodb.StreamViewType.NEW_AND_OLD_IMAGES,
            point_in_time_recovery=environment == "prod",
            removal_policy=removal,
        )

        self.messages_table = dynamodb.Table(
            self,
            "TicketMessages",
            partition_key=dynamodb.Attribute(name="ticket_id", type=dynamodb.AttributeType.STRING),
            sort_key=dynamodb.Attribute(name="message_key", type=dynamodb.AttributeType.STRING),
            billing_mode=dynamodb.BillingMode.PAY_PER_REQUEST,
            point_in_time_recovery=environment == "prod",
            removal_policy=removal,
        )

        self.agents_table = dynamodb.Table(
            self,
            "Agents",
            partition_key=dynamodb.Attribute(name="id", type=dynamodb.AttributeType.STRING),
            billing_mode=dynamodb.BillingMode.PAY_PER_REQUEST,
            point_in_time_recovery=environment == "prod",
            removal_policy=removal,
        )

        # Append-only closure audit log; (agent_id, ticket_id) is the idempotency key.
        self.agent_metrics_table = dynamodb.Table(
            self,
            "AgentTicketMetrics",
            partition_key=dynamodb.Attribute(name="agent_id", type=dynamodb.AttributeType.STRING),
            sort_key=dynamodb.Attribute(name="ticket_id", type=dynamodb.AttributeType.STRING),
            billing_mode=dynamodb.BillingMode.PAY_PER_REQUEST,
            point_in_time_recovery=environment == "prod",
            removal_policy=removal,
        )

    @property
    def tables(self):
        return (self.tickets_table, self.messages_table, self.agents_table, self.agent_metrics_table)

    def table_environment(self) -> dict:
        return {
            "TICKETS_TABLE": self.tickets_table.table_name,
            "MESSAGES_TABLE": self.messages_table.table_name,
            "AGENTS_TABLE": self.agents_table.table_name,
            "AGENT_METRICS_TABLE": self.agent_metrics_table.table_name,
            "DB_SECRET_ARN": self.db_secret.secret_arn,
        }
