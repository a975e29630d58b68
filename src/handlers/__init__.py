"""Lambda entrypoints (HTTP API, DynamoDB Streams, EventBridge schedules)."""
