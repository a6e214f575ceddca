"""
LLM prompts for the Deal Desk engine.

Provides system and user prompts for contract document drafting.
"""
