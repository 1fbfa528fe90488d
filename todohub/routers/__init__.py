"""HTTP routers over the aggregator."""
