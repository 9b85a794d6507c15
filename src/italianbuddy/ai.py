"""Chat-completion providers and the conversation agent built on top of them."""

import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Union

import anthropic
import openai

from .config import AgentConfig, mask_key
from .core import ChatReply, Scenario, Turn
from .errors import (
    ConfigurationError,
    ProviderTimeoutError,
    UpstreamProviderError,
    ValidationError,
)
from .parsing import extract_json_object, parse_response

logger = logging.getLogger(__name__)

WORKFLOWS_DIR = Path(__file__).parent / "workflows"

OPENAI_KEY_PREFIX = "sk-"
ANTHROPIC_KEY_PREFIX = "sk-ant-"
MIN_KEY_LENGTH = 21

TurnLike = Union[Turn, Dict[str, Any]]


def is_valid_key(key: Optional[str], prefix: str, min_length: int = MIN_KEY_LENGTH) -> bool:
    """Tells a usable credential from an empty value or a placeholder."""
    return bool(key) and key.startswith(prefix) and len(key) >= min_length


def truncate_history(turns: Sequence[TurnLike], limit: int) -> List[Turn]:
    """Keeps the most recent ``limit`` turns, oldest first."""
    if limit <= 0:
        return []
    return [Turn.model_validate(turn) for turn in list(turns)[-limit:]]


class ChatProvider(ABC):
    """A chat-completion backend with one provider-agnostic call."""

    name: str = ""

    def __init__(self, model: str, history_limit: int = 20):
        self.model = model
        self.history_limit = history_limit

    def converse(
        self,
        system_instructions: str,
        prior_turns: Sequence[TurnLike],
        new_user_text: str,
        max_tokens: int = 1024,
        temperature: float = 0.7,
    ) -> str:
        """Sends a conversation to the provider and returns the reply text.

        Args:
            system_instructions: Instructions framing the model's behaviour.
            prior_turns: Earlier turns; only the most recent ``history_limit``
                are sent.
            new_user_text: The learner's new message, sent last.
            max_tokens: Upper bound on reply length.
            temperature: Sampling temperature.

        Returns:
            The reply as a plain string.

        Raises:
            ProviderTimeoutError: If the call timed out.
            UpstreamProviderError: If the call failed or the reply was malformed.
        """
        messages = [
            {"role": turn.role, "content": turn.content}
            for turn in truncate_history(prior_turns, self.history_limit)
        ]
        messages.append({"role": "user", "content": new_user_text})
        return self._complete(system_instructions, messages, max_tokens, temperature)

    @abstractmethod
    def _complete(
        self,
        system_instructions: str,
        messages: List[Dict[str, str]],
        max_tokens: int,
        temperature: float,
    ) -> str:
        """Performs the provider-specific request."""
        pass


class OpenAIProvider(ChatProvider):
    """OpenAI chat completions; system instructions lead the message list."""

    name = "openai"

    def __init__(
        self,
        api_key: str,
        model: str,
        timeout: float = 30.0,
        history_limit: int = 20,
        client: Optional[openai.OpenAI] = None,
    ):
        super().__init__(model, history_limit)
        self.client = client or openai.OpenAI(api_key=api_key, timeout=timeout)

    def _complete(self, system_instructions, messages, max_tokens, temperature):
        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=[{"role": "system", "content": system_instructions}, *messages],
                max_tokens=max_tokens,
                temperature=temperature,
            )
        except openai.APITimeoutError as e:
            logger.error("OpenAI request timed out: %s", e)
            raise ProviderTimeoutError(str(e), provider=self.name) from e
        except openai.OpenAIError as e:
            logger.error("OpenAI request failed: %s", e)
            raise UpstreamProviderError(str(e), provider=self.name) from e

        try:
            content = response.choices[0].message.content
        except (AttributeError, IndexError, TypeError) as e:
            raise UpstreamProviderError(
                f"Malformed OpenAI response: {e}", provider=self.name
            ) from e
        if not isinstance(content, str):
            raise UpstreamProviderError(
                "Malformed OpenAI response: no message content", provider=self.name
            )
        return content


class AnthropicProvider(ChatProvider):
    """Anthropic messages API; system instructions go in their own field."""

    name = "anthropic"

    def __init__(
        self,
        api_key: str,
        model: str,
        timeout: float = 30.0,
        history_limit: int = 20,
        client: Optional[anthropic.Anthropic] = None,
    ):
        super().__init__(model, history_limit)
        self.client = client or anthropic.Anthropic(api_key=api_key, timeout=timeout)

    def _complete(self, system_instructions, messages, max_tokens, temperature):
        try:
            response = self.client.messages.create(
                model=self.model,
                max_tokens=max_tokens,
                temperature=temperature,
                system=system_instructions,
                messages=messages,
            )
        except anthropic.APITimeoutError as e:
            logger.error("Anthropic request timed out: %s", e)
            raise ProviderTimeoutError(str(e), provider=self.name) from e
        except anthropic.AnthropicError as e:
            logger.error("Anthropic request failed: %s", e)
            raise UpstreamProviderError(str(e), provider=self.name) from e

        try:
            text = response.content[0].text
        except (AttributeError, IndexError, TypeError) as e:
            raise UpstreamProviderError(
                f"Malformed Anthropic response: {e}", provider=self.name
            ) from e
        if not isinstance(text, str):
            raise UpstreamProviderError(
                "Malformed Anthropic response: no text block", provider=self.name
            )
        return text


def selected_provider_name(config: AgentConfig) -> Optional[str]:
    """Names the provider ``select_provider`` would pick, or None."""
    if is_valid_key(config.openai_api_key, OPENAI_KEY_PREFIX):
        return OpenAIProvider.name
    if is_valid_key(config.anthropic_api_key, ANTHROPIC_KEY_PREFIX):
        return AnthropicProvider.name
    return None


def select_provider(config: AgentConfig) -> ChatProvider:
    """Builds the provider to use for every call of an agent.

    OpenAI is preferred whenever its key looks valid; Anthropic is the
    fallback. The order is fixed.

    Raises:
        ConfigurationError: If neither key looks valid.
    """
    name = selected_provider_name(config)
    if name == OpenAIProvider.name:
        logger.info(
            "Using OpenAI (%s) as AI provider, key %s",
            config.openai_model,
            mask_key(config.openai_api_key),
        )
        return OpenAIProvider(
            config.openai_api_key,
            config.openai_model,
            timeout=config.request_timeout,
            history_limit=config.history_limit,
        )
    if name == AnthropicProvider.name:
        logger.info(
            "Using Anthropic (%s) as AI provider, key %s",
            config.anthropic_model,
            mask_key(config.anthropic_api_key),
        )
        return AnthropicProvider(
            config.anthropic_api_key,
            config.anthropic_model,
            timeout=config.request_timeout,
            history_limit=config.history_limit,
        )
    raise ConfigurationError(
        "No valid API key found. Please set OPENAI_API_KEY or ANTHROPIC_API_KEY",
        details={
            "openai_api_key": mask_key(config.openai_api_key),
            "anthropic_api_key": mask_key(config.anthropic_api_key),
        },
    )


def load_workflow(mode: str, workflows_dir: Path = WORKFLOWS_DIR) -> str:
    """Reads the system instructions for a mode (chat, scenario, ...)."""
    path = workflows_dir / f"{mode}_mode.md"
    if not path.is_file():
        raise ConfigurationError(
            f"Workflow file not found for mode '{mode}'", details={"path": str(path)}
        )
    return path.read_text(encoding="utf-8")


def scenario_instructions(workflow: str, scenario: Scenario) -> str:
    """Appends the scenario description to the scenario workflow."""
    return (
        f"{workflow}\n\n## Current Scenario\n"
        f"**Title:** {scenario.title}\n"
        f"**Your Role:** {scenario.ai_role}\n"
        f"**Objectives:** {', '.join(scenario.objectives)}"
    )


class ConversationAgent:
    """Language tutor that talks to whichever provider was configured.

    The provider is resolved once, when the agent is built.
    """

    def __init__(
        self,
        config: AgentConfig,
        provider: Optional[ChatProvider] = None,
        workflows_dir: Path = WORKFLOWS_DIR,
    ):
        """Initializes the agent.

        Args:
            config: Credentials, models and languages.
            provider: Explicit provider; when None one is selected from config.
            workflows_dir: Directory holding the ``<mode>_mode.md`` files.

        Raises:
            ConfigurationError: If no provider can be selected.
        """
        self.config = config
        self.provider = provider or select_provider(config)
        self.workflows_dir = workflows_dir

    def _workflow(self, mode: str) -> str:
        # Workflows contain JSON examples, so no str.format here.
        workflow = load_workflow(mode, self.workflows_dir)
        target = self.config.target_language
        translation = self.config.translation_language
        replacements = {
            "{target_language}": target,
            "{translation_language}": translation,
            "{target_language_key}": target.lower(),
            "{translation_language_key}": translation.lower(),
        }
        for placeholder, value in replacements.items():
            workflow = workflow.replace(placeholder, value)
        return workflow

    def chat(self, user_message: str, history: Sequence[TurnLike] = ()) -> ChatReply:
        """Free conversation with grammar correction."""
        text = self.provider.converse(
            self._workflow("chat"), history, user_message, max_tokens=1024, temperature=0.7
        )
        return parse_response(text)

    def run_scenario(
        self, scenario: Scenario, user_message: str, history: Sequence[TurnLike] = ()
    ) -> ChatReply:
        """Role-play conversation inside a scenario."""
        system = scenario_instructions(self._workflow("scenario"), scenario)
        text = self.provider.converse(
            system, history, user_message, max_tokens=1024, temperature=0.7
        )
        return parse_response(text)

    def generate_vocabulary_example(self, word: str) -> Dict[str, Any]:
        """Asks for an example sentence, its translation and a usage note."""
        target_key = f"example_{self.config.target_language.lower()}"
        translation_key = f"example_{self.config.translation_language.lower()}"
        prompt = (
            f'Generate an example sentence for the {self.config.target_language} '
            f'word: "{word}"'
        )
        text = self.provider.converse(
            self._workflow("vocabulary"), [], prompt, max_tokens=512, temperature=0.7
        )

        decoded = extract_json_object(text)
        if decoded is not None:
            return decoded

        logger.warning("No JSON object in vocabulary example for %r", word)
        return {target_key: text, translation_key: "", "usage_note": ""}

    def daily_prompt(self, action: str, data: Optional[str] = None) -> Dict[str, str]:
        """Generates a writing prompt, or evaluates the learner's answer to one.

        Raises:
            ValidationError: If the action is unknown or the answer is missing.
        """
        language = self.config.target_language
        if action == "generate":
            content = (
                f"Generate a creative {language} writing prompt for an intermediate "
                "learner (B1-B2 level). Make it engaging and relevant to daily life."
            )
        elif action == "evaluate":
            if not data or not data.strip():
                raise ValidationError("A response to evaluate is required", field="data")
            content = (
                f"Evaluate this {language} writing response and provide feedback:\n\n{data}"
            )
        else:
            raise ValidationError(f"Invalid action for daily prompt: {action}", field="action")

        text = self.provider.converse(
            self._workflow("daily_prompt"), [], content, max_tokens=1024, temperature=0.7
        )
        if action == "generate":
            return {"prompt": text}
        return {"feedback": text}
