# FILE: helm/__init__.py
"""
Helm - multi-provider LLM request orchestration.

Routes a user message through analysis, a security gate, model selection
and streamed generation with provider failover and validation-driven
upgrades.
"""

__version__ = "0.4.0"
