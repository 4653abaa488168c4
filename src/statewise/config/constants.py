"""
Configuration Management for Statewise

This module holds the settings for the Statewise engine, including LLM
configurations, token limits, orchestration defaults and state store locations.
"""

import os
from dotenv import load_dotenv

load_dotenv()  # Load environment variables from .env file

# LLM Configurations
llm_configs = {
    "state_llm": {
        "model": os.getenv("STATEWISE_MODEL", "gemini/gemini-2.5-flash"),
        "temperature": 0.2,
        "max_tokens": 4000,
        "timeout": 60,
    },
}

# Token Management Settings
token_limits = {
    "state_llm_max_prompt_tokens": 32768,  # Max tokens for full prompt
}

# Orchestration Settings
orchestration_settings = {
    "default_system_prompt": "You're a helpful assistant",
    "single_prompt_state_tracking": os.getenv(
        "STATEWISE_SINGLE_PROMPT", "true"
    ).lower()
    == "true",
    "conversation_history": False,
    "agent_max_iterations": 10,  # Upper bound for the tool-calling agent loop
    "max_iterations_message": "Agent stopped due to max iterations.",
    "task_steps_field": "task_steps",  # Target for the "steps" tool heuristic
    "handler_post_analysis": True,  # Allow the state handler's post-tool round
}

# State Store Settings
store_settings = {
    "state_dir": os.getenv("STATEWISE_STATE_DIR", "data/state"),
    "state_file_format": "{session_id}.json",
    "backup_format": "data/state/backup/{session_id}_{timestamp}.json",
}

# Profile Settings
profile_settings = {
    "profiles_dir": os.getenv("STATEWISE_PROFILES_DIR", "profiles"),
}

# MCP Tool Settings
mcp_settings = {
    "config_file": os.getenv("STATEWISE_MCP_CONFIG", ""),
}

# Application Settings
app_settings = {
    "default_user": "user",
    "default_session_prefix": "statewise_session",
    "logging_level": "INFO",
    "log_file": "logs/statewise.log",
    "verbose_log_file": "logs/statewise_verbose.log",
    "debug_mode": os.getenv("STATEWISE_DEBUG", "false").lower()
    in ("true", "1", "yes", "on"),
}

# LLM Retry Settings
llm_retry_settings = {
    "max_retries": 3,  # Maximum retry attempts for LLM calls
    "base_delay": 2.0,  # Base delay in seconds between retries
    "max_delay": 30.0,  # Maximum delay in seconds for exponential backoff
}
