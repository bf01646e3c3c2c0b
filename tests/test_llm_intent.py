"""Tests for the chat-model intent classifier, with the model chain mocked."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from langchain_core.runnables import RunnableLambda

from llm_intent import ChatIntentClassifier, IntentDecision


@pytest.fixture
def classifier(config):
    llm = MagicMock()
    llm.with_structured_output.return_value = RunnableLambda(lambda prompt: prompt)
    chat = ChatIntentClassifier(config, llm=llm)
    chat.chain = MagicMock()
    return chat


class TestChatIntentClassifier:

    @pytest.mark.asyncio
    async def test_uses_model_decision(self, classifier):
        classifier.chain.ainvoke = AsyncMock(return_value=IntentDecision(
            needs_search=False, needs_action=True, command="mark ticket #4 as resolved"))

        intent = await classifier.aclassify("please wrap up #4, it's fixed")

        assert intent.target_number == 4
        assert intent.needs_action
        assert intent.command == "mark ticket #4 as resolved"

    @pytest.mark.asyncio
    async def test_target_always_comes_from_message(self, classifier):
        classifier.chain.ainvoke = AsyncMock(return_value=IntentDecision(
            needs_search=False, needs_action=True, command="assign ticket #999 to me"))

        intent = await classifier.aclassify("assign ticket #4 to me")

        assert intent.target_number == 4
        assert intent.command is None

    @pytest.mark.asyncio
    async def test_falls_back_to_keywords_on_model_error(self, classifier):
        classifier.chain.ainvoke = AsyncMock(side_effect=RuntimeError("rate limited"))

        intent = await classifier.aclassify("assign ticket #4 to me")

        assert intent.needs_action
        assert intent.target_number == 4
        assert intent.command is None
