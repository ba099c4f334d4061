"""agentflow - multi-agent collaboration and orchestration engine."""

__version__ = "0.1.0"
