"""Storage adapters for tickets, messages, agents and daily metrics."""
