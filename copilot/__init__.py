"""Browser copilot: conversation turn orchestration for an AI browser sidebar."""

__version__ = "0.1.0"
