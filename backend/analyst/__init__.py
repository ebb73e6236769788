"""
Next Analyst backend.

Conversational data analysis with an LLM agent whose Python code execution
is gated behind human approval and runs in a fresh E2B sandbox per approval.
"""

__version__ = "1.0.0"
