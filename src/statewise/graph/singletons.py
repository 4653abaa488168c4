"""
Singleton instances for shared resources in the Statewise graphs.

This module provides a global LLMWrapper and the compiled pipeline
applications so sessions do not rebuild them on every interaction.
"""

import logging
from typing import Any, Dict, Optional
from src.statewise.llm.llm_wrapper import LLMWrapper
from src.statewise.config.constants import (
    llm_configs,
    token_limits,
)

logger = logging.getLogger(__name__)

# Global singleton instances
_state_llm: Optional[LLMWrapper] = None
_agent_app = None
_handler_app = None


def initialize_singletons(model_config: Optional[Dict[str, Any]] = None) -> None:
    """
    Initialize the shared LLM.

    This should be called once per session from the CLI, after the profile
    has been selected.

    Args:
        model_config: Optional LiteLLM model configuration override
    """
    global _state_llm

    config = dict(llm_configs["state_llm"])
    if model_config:
        config.update(model_config)

    logger.info(f"Initializing singletons with model '{config['model']}'")
    _state_llm = LLMWrapper(config, token_limits["state_llm_max_prompt_tokens"])
    logger.info("Singleton instances initialized successfully")


def get_state_llm() -> LLMWrapper:
    """
    Get the global LLMWrapper instance.

    Raises:
        RuntimeError: If singletons haven't been initialized
    """
    if _state_llm is None:
        raise RuntimeError(
            "State LLM singleton not initialized. Call initialize_singletons() first."
        )
    return _state_llm


def get_agent_app():
    """Compiled stateful agent graph, built on first use."""
    global _agent_app
    if _agent_app is None:
        from src.statewise.graph.graph import compile_agent_application

        _agent_app = compile_agent_application()
    return _agent_app


def get_handler_app():
    """Compiled state handler graph, built on first use."""
    global _handler_app
    if _handler_app is None:
        from src.statewise.graph.graph import compile_handler_application

        _handler_app = compile_handler_application()
    return _handler_app


def reset_singletons():
    """
    Reset all singleton instances (useful for testing or configuration changes).
    """
    global _state_llm, _agent_app, _handler_app
    logger.info("Resetting singleton instances")
    _state_llm = None
    _agent_app = None
    _handler_app = None
