"""
Agent Profile Configuration for Statewise

This module defines the AgentProfile class, which loads a reusable agent
setup (system prompt, state model, history and prompt mode) from a JSON file.
"""

import json
import os
import logging
from typing import Any, Dict, Optional
from rich.console import Console

from src.statewise.config.constants import orchestration_settings, profile_settings
from src.statewise.errors import ConfigurationError
from src.statewise.state.schema import parse_state_model

console = Console()
logger = logging.getLogger(__name__)


class AgentProfile:
    """
    An agent setup loaded from ``<profiles_dir>/<name>.json``.

    Example file::

        {
          "display_name": "Travel Planner",
          "system_prompt": ["You help {{user}} plan trips."],
          "state_model": {"destination": "Travel destination"},
          "conversation_history": true,
          "single_prompt": false
        }
    """

    def __init__(self, profile_name: str, user_name: str = "user"):
        """
        Args:
            profile_name: The name of the profile to load (e.g. 'travel')
            user_name: Replaces ``{{user}}`` in the system prompt
        """
        self.profile_name = profile_name
        self.user_name = user_name
        self.display_name = ""
        self.system_prompt = ""
        self.state_model: Optional[Dict[str, Any]] = None
        self.track_history = orchestration_settings["conversation_history"]
        self.single_prompt = orchestration_settings["single_prompt_state_tracking"]
        self._load_profile()

    def _load_profile(self):
        profile_file = os.path.join(
            profile_settings["profiles_dir"], f"{self.profile_name}.json"
        )
        if not os.path.exists(profile_file):
            error_msg = f"Profile file not found at '{profile_file}'"
            console.print(f"[bold red]Error: {error_msg}[/bold red]")
            logger.error(error_msg)
            raise FileNotFoundError(error_msg)

        try:
            with open(profile_file, "r", encoding="utf-8") as f:
                profile_data = json.load(f)
            logger.info(f"Successfully loaded profile file: {profile_file}")
        except json.JSONDecodeError as e:
            error_msg = f"Error decoding JSON from {profile_file}: {e}"
            console.print(f"[bold red]Error: {error_msg}[/bold red]")
            logger.error(error_msg)
            raise ConfigurationError(error_msg) from e

        self.display_name = profile_data.get(
            "display_name", self.profile_name.replace("_", " ").title()
        )

        # System prompts may be split over several lines in the file
        raw_prompt = profile_data.get("system_prompt", "")
        if isinstance(raw_prompt, list):
            raw_prompt = "\n".join(raw_prompt)
        self.system_prompt = self._replace_placeholders(raw_prompt)

        self.state_model = parse_state_model(profile_data.get("state_model"))
        self.track_history = bool(
            profile_data.get("conversation_history", self.track_history)
        )
        self.single_prompt = bool(profile_data.get("single_prompt", self.single_prompt))

    def _replace_placeholders(self, text: str) -> str:
        return text.replace("{{user}}", self.user_name)

    def get_system_prompt(self) -> str:
        return self.system_prompt or orchestration_settings["default_system_prompt"]

    @staticmethod
    def get_available_profiles() -> list[str]:
        """
        Scans the profiles directory for available profile files.

        Returns:
            list[str]: Profile names (without the .json extension)
        """
        profiles_dir = profile_settings["profiles_dir"]
        if not os.path.isdir(profiles_dir):
            logger.warning(f"Profiles directory not found at: {profiles_dir}")
            return []

        profiles = sorted(
            f[: -len(".json")] for f in os.listdir(profiles_dir) if f.endswith(".json")
        )
        logger.info(f"Found {len(profiles)} available profiles in {profiles_dir}.")
        return profiles
