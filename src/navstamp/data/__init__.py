"""Daily dashboard series: funding rates, JLP pool snapshots, protocol fees."""
