"""AI completion service — card content help via an OpenAI-compatible API.

Three actions, one prompt template each:
- generate:  write a description for a card from its title
- summarize: condense a card's notes into short bullet points
- suggest:   break the work into ordered, actionable subtasks

CompletionClient is constructed once in create_app() from config and kept in
app.extensions["completion_client"]; it owns a requests.Session that is
closed at interpreter exit.
"""

import logging

import requests
from flask import current_app

from taskboard.errors import CompletionError, CompletionUnavailable, ValidationError

logger = logging.getLogger(__name__)

ACTIONS = ("generate", "summarize", "suggest")


def build_prompt(action, title=None, content=None):
    """Render the prompt for an action.

    Raises:
        ValidationError: if the action is missing or unknown.
    """
    if not action:
        raise ValidationError("An AI action is required.")
    if action == "generate":
        return (
            "You are a project management assistant. Write a concise but "
            "informative description for a Kanban card titled "
            f"\"{title or '(untitled)'}\". Include context, the goal, and the "
            "short steps needed to finish it."
        )
    if action == "summarize":
        return (
            "Summarize the following notes into short bullet points that "
            f"highlight the key points:\n{content or 'No content.'}"
        )
    if action == "suggest":
        return (
            "Break the following work into an ordered list of actionable "
            f"subtasks. Title: \"{title or '(untitled)'}\". "
            f"Additional description: {content or 'none'}."
        )
    raise ValidationError(
        f"Invalid AI action '{action}'. Must be one of: {', '.join(ACTIONS)}"
    )


class CompletionClient:
    """Thin client for a chat-completions endpoint."""

    def __init__(self, api_key=None, base_url="https://api.openai.com/v1",
                 model="gpt-4o-mini", timeout=30, session=None):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.timeout = timeout
        self.session = session or requests.Session()

    @classmethod
    def from_config(cls, config):
        return cls(
            api_key=config.get("AI_API_KEY"),
            base_url=config.get("AI_BASE_URL", "https://api.openai.com/v1"),
            model=config.get("AI_MODEL", "gpt-4o-mini"),
            timeout=config.get("AI_TIMEOUT", 30),
        )

    @property
    def configured(self):
        return bool(self.api_key)

    def complete(self, action, title=None, content=None):
        """Run one completion and return the generated text.

        Raises:
            ValidationError: unknown action.
            CompletionUnavailable: no API key configured.
            CompletionError: the request failed or returned no text.
        """
        prompt = build_prompt(action, title=title, content=content)
        if not self.configured:
            raise CompletionUnavailable("AI_API_KEY is not configured.")

        try:
            resp = self.session.post(
                f"{self.base_url}/chat/completions",
                headers={"Authorization": f"Bearer {self.api_key}"},
                json={
                    "model": self.model,
                    "messages": [{"role": "user", "content": prompt}],
                },
                timeout=self.timeout,
            )
            resp.raise_for_status()
            data = resp.json()
            text = data["choices"][0]["message"]["content"]
        except (requests.RequestException, ValueError, KeyError, IndexError, TypeError) as e:
            logger.error(f"AI completion failed ({action}): {e}")
            raise CompletionError("The AI request failed.") from e

        if not text:
            raise CompletionError("The AI service returned no text.")
        logger.info(f"AI completion '{action}' returned {len(text)} chars")
        return text.strip()

    def close(self):
        self.session.close()


def get_completion_client():
    """The client registered on the current app."""
    return current_app.extensions["completion_client"]
