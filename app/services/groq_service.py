"""
GROQ SERVICE MODULE
===================

The generation backend: takes the system instruction and bounded history built
by the prompt composer plus the new message, and returns the agent's reply text.

ROUND-ROBIN API KEYS:
  - One ChatGroq client per key in GROQ_API_KEYS.
  - Each request starts at the next key (class-level _shared_key_index).
  - If a key fails (e.g. 429 rate limit) the next key is tried; when every key
    has failed, BackendUnavailableError is raised with the last error as cause.
  - Keys are logged masked.

This service does not retry the same key and does not inspect provider errors
beyond logging them; callers decide what to show the user.
"""

import logging
import threading
from typing import List, Sequence

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage
from langchain_core.prompts import ChatPromptTemplate, MessagesPlaceholder
from langchain_groq import ChatGroq

from app.errors import BackendUnavailableError
from app.models import HistoryEntry
from config import GROQ_API_KEYS, GROQ_MODEL, GROQ_TEMPERATURE, MAX_OUTPUT_TOKENS

logger = logging.getLogger("Workiwi")


def escape_curly_braces(text: str) -> str:
    """Double { and } so ChatPromptTemplate does not treat ruleset text as template variables."""
    return text.replace("{", "{{").replace("}", "}}")


def mask_key(key: str) -> str:
    if len(key) <= 8:
        return "****"
    return f"{key[:4]}...{key[-4:]}"


def history_to_messages(history: Sequence[HistoryEntry]) -> List[BaseMessage]:
    """Convert {role, text} entries to langchain messages ("user" -> human, "model" -> AI)."""
    messages = []
    for entry in history:
        if entry.role == "user":
            messages.append(HumanMessage(content=entry.text))
        else:
            messages.append(AIMessage(content=entry.text))
    return messages


# ==============================================================================
# GROQ SERVICE CLASS
# ==============================================================================

class GroqService:
    """Generation backend over one or more Groq API keys."""

    # Shared across instances so every request advances the same rotation.
    _shared_key_index = 0
    _key_lock = threading.Lock()

    def __init__(self, api_keys: Sequence[str] = None, model: str = GROQ_MODEL):
        keys = list(api_keys if api_keys is not None else GROQ_API_KEYS)
        if not keys:
            raise ValueError("GROQ_API_KEY is not set. Add it to your .env file.")
        self.api_keys = keys
        self.model = model
        self.llms = [
            ChatGroq(
                groq_api_key=key,
                model_name=model,
                temperature=GROQ_TEMPERATURE,
                max_tokens=MAX_OUTPUT_TOKENS,
            )
            for key in keys
        ]
        logger.info("Groq service ready with %s API key(s), model %s", len(keys), model)

    def _next_start_index(self) -> int:
        with GroqService._key_lock:
            index = GroqService._shared_key_index % len(self.llms)
            GroqService._shared_key_index += 1
        return index

    def _invoke_llm(self, prompt: ChatPromptTemplate, messages: List[BaseMessage], question: str) -> str:
        """Run the prompt on each key in turn starting at the next round-robin slot."""
        start = self._next_start_index()
        last_error = None
        for offset in range(len(self.llms)):
            index = (start + offset) % len(self.llms)
            chain = prompt | self.llms[index]
            try:
                logger.info("Calling Groq with key #%s (%s)", index + 1, mask_key(self.api_keys[index]))
                response = chain.invoke({"history": messages, "question": question})
                return response.content
            except Exception as e:
                last_error = e
                logger.warning("Groq key #%s failed: %s", index + 1, e)
        raise BackendUnavailableError(f"All Groq API keys failed: {last_error}", cause=last_error)

    def generate(self, system_instruction: str, history: Sequence[HistoryEntry], message: str) -> str:
        """Return the reply text for message, given the system instruction and prior turns."""
        prompt = ChatPromptTemplate.from_messages([
            ("system", escape_curly_braces(system_instruction)),
            MessagesPlaceholder(variable_name="history"),
            ("human", "{question}"),
        ])
        return self._invoke_llm(prompt, history_to_messages(history), message)
