# llm_intent.py

import logging
from typing import Optional

from langchain_core.prompts import ChatPromptTemplate
from langchain_openai import ChatOpenAI
from pydantic import BaseModel, Field

from config_manager import ConfigManager
from intent_classifier import IntentClassifier, extract_ticket_number
from models import Intent

logger = logging.getLogger(__name__)


class IntentDecision(BaseModel):
    """Structured output requested from the chat model."""
    needs_search: bool = Field(..., description="The operator asks a question that past tickets or the knowledge base could answer")
    needs_action: bool = Field(..., description="The operator asks to change a ticket")
    command: Optional[str] = Field(
        None,
        description="When needs_action is true, the change rewritten as one command such as "
                    "'assign ticket #123 to me', 'mark ticket #123 as closed', "
                    "'set priority of ticket #123 to high' or 'add comment to ticket #123: <text>'",
    )


PROMPT = ChatPromptTemplate.from_messages([
    ("system", """You route messages from help-desk agents to tools.

Decide whether the message needs a search of past tickets and the knowledge base,
whether it asks to change a ticket, or both.

Ticket changes the system supports:
- assign a ticket to the requesting agent, or unassign it
- change status (new, in_progress, resolved, closed, cancelled)
- change priority (low, medium, high, urgent)
- add a public comment or an internal note

Only produce a command for ticket numbers written in the message as #<digits>."""),
    ("human", "{message}"),
])


class ChatIntentClassifier:
    """
    Chat-model intent classifier. The ticket reference is always taken from the
    message text, never from the model; on any model failure the keyword
    classifier's answer is used instead.
    """
    def __init__(self, config: ConfigManager, fallback: Optional[IntentClassifier] = None,
                 llm: Optional[ChatOpenAI] = None):
        self.config = config
        self.fallback = fallback or IntentClassifier(config)
        self.llm = llm or ChatOpenAI(
            model=config.llm_model,
            temperature=config.llm_temperature,
            api_key=config.openai_api_key,
        )
        self.chain = PROMPT | self.llm.with_structured_output(IntentDecision)

    async def aclassify(self, message: str) -> Intent:
        target_number = extract_ticket_number(message)
        try:
            decision: IntentDecision = await self.chain.ainvoke({"message": message})
        except Exception as e:
            logger.warning(f"Chat-model classification failed, using keyword classifier: {e}")
            return self.fallback.classify(message)

        command = decision.command if decision.needs_action else None
        if command and extract_ticket_number(command) != target_number:
            logger.warning(f"Discarding model command {command!r}: ticket reference does not match the message")
            command = None

        intent = Intent(
            has_target_record=target_number is not None,
            target_number=target_number,
            needs_search=decision.needs_search,
            needs_action=decision.needs_action,
            command=command,
        )
        logger.info(
            f"Chat model classified message: target={intent.target_number}, "
            f"needs_search={intent.needs_search}, needs_action={intent.needs_action}"
        )
        return intent
