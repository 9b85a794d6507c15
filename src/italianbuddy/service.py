"""Request handlers behind the mobile app's API.

Each handler validates its input, calls the agent and/or the store, and
returns a JSON-ready dictionary. Failures are raised as BuddyError subclasses.
"""

import json
import logging
import random
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import pydantic

from .ai import ConversationAgent, selected_provider_name
from .config import AgentConfig, mask_key
from .core import ChatReply, ReviewScheduler, Scenario, Turn
from .database import DEMO_USER, BuddyDatabase
from .errors import NotFoundError, PersistenceError, ValidationError

logger = logging.getLogger(__name__)

DATA_DIR = Path(__file__).parent / "data"


def load_scenarios(data_dir: Path = DATA_DIR) -> List[Scenario]:
    with open(data_dir / "scenarios.json", encoding="utf-8") as f:
        return [Scenario.model_validate(entry) for entry in json.load(f)]


def load_seed_vocabulary(data_dir: Path = DATA_DIR) -> List[Dict[str, str]]:
    with open(data_dir / "vocabulary.json", encoding="utf-8") as f:
        return json.load(f)


def _require_text(value: Any, field: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field} is required and must be a non-empty string", field=field)
    return value


def _validate_history(history: Optional[Sequence[Any]]) -> List[Turn]:
    if history is None:
        return []
    if not isinstance(history, (list, tuple)):
        raise ValidationError("conversationHistory must be a list", field="conversationHistory")
    try:
        return [Turn.model_validate(turn) for turn in history]
    except pydantic.ValidationError as e:
        raise ValidationError(
            f"conversationHistory entries need a role (user or assistant) and content: {e}",
            field="conversationHistory",
        ) from e


class BuddyService:
    """Chat, scenario and vocabulary operations for one deployment.

    The conversation agent is built on first use, so vocabulary review works
    without any model credential.
    """

    def __init__(
        self,
        config: AgentConfig,
        database: Optional[BuddyDatabase] = None,
        agent: Optional[ConversationAgent] = None,
        scheduler: Optional[ReviewScheduler] = None,
        data_dir: Path = DATA_DIR,
    ):
        self.config = config
        self.db = database or BuddyDatabase(config.database_path)
        self._agent = agent
        self.scheduler = scheduler or ReviewScheduler()
        self.data_dir = data_dir

    @property
    def agent(self) -> ConversationAgent:
        if self._agent is None:
            self._agent = ConversationAgent(self.config)
        return self._agent

    def _save_turn(self, user_id: str, mode: str, message: str, reply: ChatReply) -> Optional[str]:
        # A failed save must not cost the learner the reply.
        try:
            turn = self.db.save_conversation(
                user_id=user_id,
                mode=mode,
                user_message=message,
                ai_response=reply.ai_message,
                grammar_corrections=reply.corrections_dict(),
            )
        except PersistenceError as e:
            logger.error("Failed to save conversation to database: %s", e.message)
            return None
        return turn.id

    # Chat

    def chat(
        self,
        message: Any,
        user_id: Any = DEMO_USER,
        history: Optional[Sequence[Any]] = None,
    ) -> Dict[str, Any]:
        """Sends a chat message and returns the reply with its corrections."""
        message = _require_text(message, "message")
        user_id = _require_text(user_id, "userId")
        turns = _validate_history(history)

        logger.info("Processing chat message from user: %s", user_id)
        reply = self.agent.chat(message, turns)
        conversation_id = self._save_turn(user_id, "chat", message, reply)

        return {
            "aiMessage": reply.ai_message,
            "grammarCorrections": reply.corrections_dict(),
            "conversationId": conversation_id,
        }

    def chat_history(self, user_id: Any = DEMO_USER, limit: int = 20) -> Dict[str, Any]:
        """Returns a user's recent chat turns, oldest first."""
        user_id = _require_text(user_id, "userId")
        if not isinstance(limit, int) or limit <= 0:
            raise ValidationError("limit must be a positive integer", field="limit")
        turns = self.db.get_conversation_history(user_id, mode="chat", limit=limit)
        conversations = [turn.model_dump(mode="json") for turn in turns]
        return {"conversations": conversations, "count": len(conversations)}

    # Scenarios

    def list_scenarios(self) -> Dict[str, Any]:
        scenarios = [s.model_dump(by_alias=True) for s in load_scenarios(self.data_dir)]
        return {"scenarios": scenarios, "count": len(scenarios)}

    def _find_scenario(self, scenario_id: str) -> Scenario:
        for scenario in load_scenarios(self.data_dir):
            if scenario.id == scenario_id:
                return scenario
        raise NotFoundError(
            f'Scenario with id "{scenario_id}" not found', details={"id": scenario_id}
        )

    def get_scenario(self, scenario_id: Any) -> Dict[str, Any]:
        scenario_id = _require_text(scenario_id, "scenarioId")
        return {"scenario": self._find_scenario(scenario_id).model_dump(by_alias=True)}

    def scenario_message(
        self,
        scenario_id: Any,
        user_message: Any,
        history: Optional[Sequence[Any]] = None,
        user_id: Any = DEMO_USER,
    ) -> Dict[str, Any]:
        """Sends a message inside a role-play scenario."""
        scenario_id = _require_text(scenario_id, "scenarioId")
        user_message = _require_text(user_message, "userMessage")
        user_id = _require_text(user_id, "userId")
        turns = _validate_history(history)
        scenario = self._find_scenario(scenario_id)

        reply = self.agent.run_scenario(scenario, user_message, turns)
        self._save_turn(user_id, "scenario", user_message, reply)

        return {
            "response": reply.ai_message,
            "grammarCorrections": reply.corrections_dict(),
        }

    # Vocabulary

    def vocabulary_due(self, user_id: Any) -> Dict[str, Any]:
        """Lists the words due for review, oldest-due first."""
        user_id = _require_text(user_id, "userId")
        words = [item.model_dump(mode="json") for item in self.db.get_vocabulary_due(user_id)]
        return {"words": words, "count": len(words)}

    def review_vocabulary(self, item_id: Any, correct: Any) -> Dict[str, Any]:
        """Records a review answer and returns the rescheduled word."""
        item_id = _require_text(item_id, "wordId")
        if not isinstance(correct, bool):
            raise ValidationError("correct must be a boolean", field="correct")

        updated = self.db.update_vocabulary_review(item_id, correct, scheduler=self.scheduler)
        word = updated.model_dump(mode="json")
        return {"word": word, "nextReview": word["next_review_at"]}

    def generate_example(self, word: Any) -> Dict[str, Any]:
        word = _require_text(word, "word")
        return self.agent.generate_vocabulary_example(word)

    def seed_vocabulary(
        self, user_id: Any, count: Any = 20, rng: Optional[random.Random] = None
    ) -> Dict[str, Any]:
        """Adds a random selection of the bundled starter words for a user."""
        user_id = _require_text(user_id, "userId")
        if isinstance(count, bool) or not isinstance(count, int) or count <= 0:
            raise ValidationError("count must be a positive integer", field="count")

        vocabulary = load_seed_vocabulary(self.data_dir)
        rng = rng or random.Random()
        selected = rng.sample(vocabulary, min(count, len(vocabulary)))

        added = []
        errors = []
        for entry in selected:
            try:
                item = self.db.add_vocabulary_word(
                    user_id,
                    entry["word"],
                    entry["translation"],
                    example="Example will be generated when reviewed.",
                )
                added.append(item.model_dump(mode="json"))
            except PersistenceError as e:
                logger.error("Failed to add word %s: %s", entry["word"], e.message)
                errors.append({"word": entry["word"], "error": e.message})

        result: Dict[str, Any] = {"added": len(added), "words": added}
        if errors:
            result["errors"] = errors
        return result

    # Daily prompt

    def daily_prompt(self, action: Any, data: Optional[str] = None) -> Dict[str, str]:
        action = _require_text(action, "action")
        return self.agent.daily_prompt(action, data)


def provider_status(config: AgentConfig) -> Dict[str, Any]:
    """Reports which provider would be selected, without building a client."""
    return {
        "selectedProvider": selected_provider_name(config) or "none",
        "openaiApiKey": mask_key(config.openai_api_key),
        "anthropicApiKey": mask_key(config.anthropic_api_key),
        "openaiModel": config.openai_model,
        "anthropicModel": config.anthropic_model,
    }
