"""
Prompts module for the clinician assistant.

Modules:
    base_system_prompt: System prompt recorded on every conversation
"""

from .base_system_prompt import BASE_SYSTEM_PROMPT

__all__ = ['BASE_SYSTEM_PROMPT']
