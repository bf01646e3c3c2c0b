# agent.py

import argparse
import asyncio
import json
import logging
import sys
import uuid
from typing import Any, Dict, Optional, Union

from action_gateway import ActionGateway
from config_manager import ConfigManager
from dedup_cache import InMemoryCommentDedupCache
from intent_classifier import IntentClassifier
from llm_intent import ChatIntentClassifier
from models import AgentResponse, Intent, TraceEventType
from record_store import SupabaseRecordStore
from response_synthesizer import ResponseSynthesizer
from search_gateway import SearchGateway
from semantic_search import SupabaseSemanticSearch
from tool_router import ACTION_TOOL, SEARCH_TOOL, ToolRouter
from trace_recorder import TraceRecorder, Tracer

logger = logging.getLogger(__name__)

FALLBACK_MESSAGE = (
    "I apologize, but I encountered an error processing your request. Please try again in a moment."
)


class SupportAgent:
    """
    Runs one operator message through classify, optional search, optional
    ticket action and synthesis, producing an AgentResponse.

    Classification always happens first; the action step runs after any search
    and is never skipped because a search ran. Nothing the collaborators raise
    reaches the caller: an unexpected error is traced and turned into the
    standard apology, with the run's trace id preserved.
    """
    def __init__(self, config: ConfigManager, classifier: Union[IntentClassifier, ChatIntentClassifier],
                 router: ToolRouter, synthesizer: ResponseSynthesizer, tracer: Tracer):
        self.config = config
        self.classifier = classifier
        self.router = router
        self.synthesizer = synthesizer
        self.tracer = tracer

    async def process_message(self, content: str, agent_id: str) -> AgentResponse:
        run_id = str(uuid.uuid4())
        self.tracer.log_event(run_id, TraceEventType.CHAIN_START, {"message": content, "agent_id": agent_id})
        logger.info(f"[run {run_id}] Processing message from agent {agent_id}")

        try:
            intent = await self.classifier.aclassify(content)

            search_output: Optional[Dict[str, Any]] = None
            if intent.needs_search:
                search_output = await self._call_tool(run_id, SEARCH_TOOL, self._search_input(content, intent), agent_id)
            elif intent.has_target_record and not intent.needs_action:
                # A bare ticket reference ("show me #101") is read and summarized.
                search_output = await self._call_tool(run_id, SEARCH_TOOL, f"lookup_ticket({intent.target_number})",
                                                      agent_id)

            action_output: Optional[Dict[str, Any]] = None
            if intent.needs_action:
                action_output = await self._call_tool(run_id, ACTION_TOOL, intent.command or content, agent_id)

            response = self.synthesizer.synthesize(intent, search_output, action_output, trace_id=run_id)
            self.tracer.log_event(run_id, TraceEventType.CHAIN_END, {
                "type": response.type,
                "sources": len(response.sources),
                "actions": [a.model_dump() for a in response.actions],
            })
            logger.info(f"[run {run_id}] Finished with a {response.type} response")
            return response
        except Exception as e:
            logger.error(f"[run {run_id}] Unhandled error while processing message: {e}", exc_info=True)
            self.tracer.log_error(run_id, e)
            return AgentResponse(content=FALLBACK_MESSAGE, type="chat", sources=[], actions=[], trace_id=run_id)

    async def _call_tool(self, run_id: str, tool: str, tool_input: str, agent_id: str) -> Dict[str, Any]:
        self.tracer.log_event(run_id, TraceEventType.TOOL_CALL, {"tool": tool, "input": tool_input})
        output = await self.router.call(tool, tool_input, agent_id)
        self.tracer.log_event(run_id, TraceEventType.TOOL_RESULT, {"tool": tool, "output": output})
        decoded = json.loads(output)
        if decoded.get("status") == "error":
            # Degraded but recoverable; the run continues.
            self.tracer.log_error(run_id, RuntimeError(f"{tool} tool: {decoded.get('message')}"))
        return decoded

    @staticmethod
    def _search_input(content: str, intent: Intent) -> str:
        if intent.target_number is not None:
            return f"ticket:{intent.target_number} {content}"
        return content


async def build_agent(config: ConfigManager) -> SupportAgent:
    """Wires a SupportAgent against Supabase and OpenAI using the loaded configuration."""
    record_store = SupabaseRecordStore(config)
    await record_store.connect()
    semantic_search = SupabaseSemanticSearch(config, record_store.client)

    dedup_cache = InMemoryCommentDedupCache(
        window_seconds=config.dedup_window_seconds,
        purge_after_seconds=config.dedup_purge_after_seconds,
    )
    router = ToolRouter(
        SearchGateway(config, semantic_search, record_store),
        ActionGateway(config, record_store, dedup_cache),
    )
    keyword_classifier = IntentClassifier(config)
    classifier = ChatIntentClassifier(config, fallback=keyword_classifier) if config.llm_enabled else keyword_classifier

    logger.info(f"Agent '{config.agent_name}' wired (chat-model classifier: {config.llm_enabled})")
    return SupportAgent(config, classifier, router, ResponseSynthesizer(config),
                        TraceRecorder(max_runs=config.max_retained_traces))


def configure_logging(level: str = "INFO"):
    # This configures the root logger. All module loggers inherit it.
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format='%(asctime)s - %(levelname)s - %(name)s - [%(module)s.%(funcName)s:%(lineno)d] - %(message)s',
        handlers=[
            logging.FileHandler("support_agent.log", mode='a'),
            logging.StreamHandler(sys.stdout)
        ]
    )


async def run_cli(args: argparse.Namespace) -> int:
    config = ConfigManager(ini_file_path=args.config, env_file_path=args.env_file)
    configure_logging(config.log_level)
    support_agent = await build_agent(config)

    messages = [" ".join(args.message)] if args.message else (line.strip() for line in sys.stdin)
    for message in messages:
        if not message:
            continue
        response = await support_agent.process_message(message, args.agent_id)
        print(response.model_dump_json(indent=2))
    return 0


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Help-desk support agent: send a message, get a response.")
    parser.add_argument("--agent-id", required=True, help="ID of the agent on whose behalf ticket changes are made")
    parser.add_argument("--config", default="config.ini", help="Path to config.ini")
    parser.add_argument("--env-file", default=None, help="Path to the .env file with secrets")
    parser.add_argument("message", nargs="*", help="Message to process; read one per line from stdin if omitted")
    args = parser.parse_args(argv)

    try:
        return asyncio.run(run_cli(args))
    except FileNotFoundError as e:
        print(f"FATAL: Agent cannot start. Configuration file missing: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        logger.info("Shutdown signal (KeyboardInterrupt) received. Stopping agent...")
        return 130
    except Exception as e:
        print(f"FATAL: Agent failed to start due to an unhandled critical error: {e}", file=sys.stderr)
        logger.critical(f"Agent failed to initialize or start: {e}", exc_info=True)
        return 1


if __name__ == "__main__":
    sys.exit(main())
