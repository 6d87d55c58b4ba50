"""Routing decisions: semantic router and FIFO decision cache."""
