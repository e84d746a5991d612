"""Product checks, stock tracking and session failover."""
