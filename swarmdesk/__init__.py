"""SwarmDesk -- track and stream claude-flow swarm sessions."""

__version__ = "0.1.0"
