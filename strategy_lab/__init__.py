"""Strategy Lab: graph and expression model for automated trading strategies."""
