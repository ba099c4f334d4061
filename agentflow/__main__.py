"""Entry point for running agentflow as a module: python -m agentflow"""

from agentflow.cli.commands import app

if __name__ == "__main__":
    app()
