"""Runtime - concurrency and observability support for the loading core."""
