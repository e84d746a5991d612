"""Product catalog and buy-now links."""
