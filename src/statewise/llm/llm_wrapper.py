"""
LLM Wrapper for Statewise

This module provides the model capability the engine consumes, built on
LangChain's ChatLiteLLM, with failsafe context pruning and rate limiting.
"""

import logging
import time
import tiktoken
from typing import Dict, Any, Optional, List, Sequence
from langchain_litellm import ChatLiteLLM
from langchain_core.messages import BaseMessage, SystemMessage, AIMessage
from .rate_limiting import with_rate_limit_handling
from src.statewise.config.constants import (
    llm_configs,
    token_limits,
    llm_retry_settings,
)

logger = logging.getLogger(__name__)


class LLMWrapper:
    """
    LLM wrapper using LangChain's ChatLiteLLM for unified LLM access.

    ``generate`` is the text-in/text-out capability the orchestration rounds
    use; ``get_llm_response`` returns the raw AIMessage and can bind tools,
    which the tool-calling agent loop needs.
    """

    def __init__(
        self,
        model_config: Optional[Dict[str, Any]] = None,
        max_prompt_tokens: Optional[int] = None,
    ):
        """
        Initialize the LLM wrapper with configuration and token limits.

        Args:
            model_config: LiteLLM-compatible model configuration
            max_prompt_tokens: Maximum tokens allowed for prompts (failsafe limit)
        """
        default_config = llm_configs["state_llm"]
        self.model_config = dict(model_config) if model_config is not None else dict(default_config)
        self.max_prompt_tokens = (
            max_prompt_tokens
            if max_prompt_tokens is not None
            else token_limits["state_llm_max_prompt_tokens"]
        )

        self.model = self.model_config.get("model", default_config["model"])
        self.temperature = self.model_config.get(
            "temperature", default_config["temperature"]
        )
        self.max_tokens = self.model_config.get(
            "max_tokens", default_config["max_tokens"]
        )
        self.timeout = self.model_config.get("timeout", default_config.get("timeout", 60))

        self.chat_model = self._create_chat_model()

        # Fallback to cl100k_base if no model-specific encoding is known
        try:
            self.tokenizer = tiktoken.encoding_for_model(self.model.split("/")[-1])
        except KeyError:
            self.tokenizer = tiktoken.get_encoding("cl100k_base")

        logger.info(f"LLMWrapper initialized with model: {self.model}")
        logger.debug(
            f"Config: temp={self.temperature}, max_tokens={self.max_tokens}, max_prompt_tokens={self.max_prompt_tokens}"
        )

    def _create_chat_model(self) -> ChatLiteLLM:
        return ChatLiteLLM(
            model=self.model,
            temperature=self.temperature,
            max_tokens=self.max_tokens,
            request_timeout=self.timeout,
        )

    def _count_tokens(self, text: str) -> int:
        try:
            return len(self.tokenizer.encode(text))
        except Exception as e:
            logger.warning(f"Token counting failed, using character estimate: {e}")
            # Fallback: rough estimate of 4 characters per token
            return len(text) // 4

    def _count_message_tokens(self, message: BaseMessage) -> int:
        """Count tokens in a message, including role overhead."""
        role_overhead = 4
        content = message.content
        if isinstance(content, str):
            content_tokens = self._count_tokens(content)
        else:
            content_tokens = self._count_tokens(str(content))
        return content_tokens + role_overhead

    def _count_messages_tokens(self, messages: List[BaseMessage]) -> int:
        return sum(self._count_message_tokens(msg) for msg in messages)

    def _prune_messages(self, messages: List[BaseMessage]) -> List[BaseMessage]:
        """
        Prune messages if they exceed the maximum token limit.

        Removes the oldest non-system messages first; system messages go only
        when nothing else is left.

        Args:
            messages: List of messages to potentially prune

        Returns:
            Pruned list of messages that fits within token limits
        """
        total_tokens = self._count_messages_tokens(messages)

        if total_tokens <= self.max_prompt_tokens:
            logger.debug(
                f"Messages within limits: {total_tokens}/{self.max_prompt_tokens} tokens"
            )
            return messages

        logger.warning(
            f"Messages exceed limit: {total_tokens}/{self.max_prompt_tokens} tokens, pruning..."
        )

        pruned_messages = list(messages)
        current_tokens = total_tokens

        while current_tokens > self.max_prompt_tokens and pruned_messages:
            idx_to_remove = next(
                (
                    i
                    for i, msg in enumerate(pruned_messages)
                    if not isinstance(msg, SystemMessage)
                ),
                0,
            )
            pruned_messages.pop(idx_to_remove)
            current_tokens = self._count_messages_tokens(pruned_messages)

        logger.info(f"Messages pruned from {total_tokens} to {current_tokens} tokens")
        return pruned_messages

    @with_rate_limit_handling(
        max_retries=llm_retry_settings["max_retries"],
        base_delay=llm_retry_settings["base_delay"],
        max_delay=llm_retry_settings["max_delay"],
    )
    async def get_llm_response(
        self, messages: List[BaseMessage], tools: Optional[Sequence[Any]] = None
    ) -> AIMessage:
        """
        Get a response from the LLM with failsafe message pruning.

        Args:
            messages: List of BaseMessage objects representing the conversation
            tools: Tools to bind for native tool calling

        Returns:
            AIMessage: The LLM's response

        Raises:
            Exception: If the LLM call fails after retries
        """
        try:
            pruned_messages = self._prune_messages(messages)

            logger.info(f"Requesting LLM response (model: {self.model})")
            logger.debug(f"Message count: {len(pruned_messages)}")

            if tools:
                logger.debug(f"Binding {len(tools)} tools to LLM call")
                _model = self.chat_model.bind_tools(list(tools))
            else:
                _model = self.chat_model

            start_time = time.time()
            response = await _model.ainvoke(pruned_messages)
            call_duration = time.time() - start_time

            if response is None or not isinstance(response, AIMessage):
                logger.warning(f"Unexpected response type from LLM: {type(response)}")
                raise Exception("LLM returned an unexpected response type")

            logger.info(
                f"LLM response received in {call_duration:.2f}s ({len(str(response.content))} chars)"
            )
            logger.debug(f"Response preview: {str(response.content)[:200]}...")
            return response

        except Exception as e:
            error_msg = f"LLM call failed for model {self.model}: {str(e)}"
            logger.error(error_msg, exc_info=True)
            raise Exception(error_msg) from e

    async def generate(self, messages: List[BaseMessage]) -> str:
        """
        Text completion for one orchestration round.

        Args:
            messages: Prompt messages

        Returns:
            The model's reply as plain text
        """
        response = await self.get_llm_response(messages)
        content = response.content
        if isinstance(content, list):
            # Some providers return content blocks
            content = "".join(
                block.get("text", "") if isinstance(block, dict) else str(block)
                for block in content
            )
        return content or ""

    def get_model_info(self) -> Dict[str, Any]:
        return {
            "model": self.model,
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
            "max_prompt_tokens": self.max_prompt_tokens,
            "timeout": self.timeout,
        }

