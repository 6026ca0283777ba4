"""Hackathon DAO — weighted voting, proposal lifecycle and royalty settlement."""

__version__ = "0.1.0"
