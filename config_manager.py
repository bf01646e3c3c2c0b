# config_manager.py

import configparser
import os
from dotenv import load_dotenv
from typing import Dict, List, Optional
import logging

logger = logging.getLogger(__name__)

DEFAULT_SEARCH_KEYWORDS = "similar, like, policy, how to, what should"
DEFAULT_QUESTION_WORDS = "what, how, when"
# A '*' inside a cue matches any run of words, e.g. 'mark * as'.
DEFAULT_ACTION_CUES = (
    "assign, unassign, close, reopen, mark * as, set * status, change * status, "
    "set * priority, priority to, add comment, add * comment, add internal note, add * internal note"
)


class ConfigManager:
    """
    Manages loading and accessing configuration from .env (for secrets)
    and config.ini (for tuning the classifier, search, responses and storage names).
    """
    def __init__(self, ini_file_path: str = 'config.ini', env_file_path: Optional[str] = None):
        # If env_file_path is not provided, it defaults to '.env' next to this module
        dotenv_path = env_file_path if env_file_path else os.path.join(os.path.dirname(__file__), '.env')
        if not os.path.exists(dotenv_path):
            logger.warning(f".env file not found at {dotenv_path}. Secrets might not be loaded if not set in environment.")
        load_dotenv(dotenv_path=dotenv_path)

        self.config = configparser.ConfigParser(interpolation=None)
        if not os.path.exists(ini_file_path):
            logger.error(f"Configuration file {ini_file_path} not found.")
            raise FileNotFoundError(f"Configuration file {ini_file_path} not found.")
        self.config.read(ini_file_path)
        self.ini_file_path = ini_file_path
        logger.info(f"Successfully loaded configuration from {ini_file_path}")

        # --- General Settings ---
        self.agent_name: str = self.config.get('General', 'AgentName', fallback='HelpDeskAgent')
        self.log_level: str = self.config.get('General', 'LogLevel', fallback='INFO').upper()
        self.max_retained_traces: int = self.config.getint('General', 'MaxRetainedTraces', fallback=500)

        # --- Backend Credentials (from .env) ---
        self.supabase_url: Optional[str] = os.getenv('SUPABASE_URL')
        self.supabase_key: Optional[str] = os.getenv('SUPABASE_SERVICE_ROLE_KEY')
        self.openai_api_key: Optional[str] = os.getenv('OPENAI_API_KEY')

        # --- Intent Cues (from config.ini) ---
        # Values are lists of lowercased keywords/phrases.
        self.search_keywords: List[str] = self._parse_keywords_string(
            self.config.get('Intent', 'SearchKeywords', fallback=DEFAULT_SEARCH_KEYWORDS))
        self.question_words: List[str] = self._parse_keywords_string(
            self.config.get('Intent', 'QuestionWords', fallback=DEFAULT_QUESTION_WORDS))
        self.action_cues: List[str] = self._parse_keywords_string(
            self.config.get('Intent', 'ActionCues', fallback=DEFAULT_ACTION_CUES))

        # --- Search ---
        self.record_limit: int = self.config.getint('Search', 'RecordLimit', fallback=5)
        self.article_limit: int = self.config.getint('Search', 'ArticleLimit', fallback=5)
        self.match_threshold: float = self.config.getfloat('Search', 'MatchThreshold', fallback=0.3)
        self.excerpt_length: int = self.config.getint('Search', 'ExcerptLength', fallback=300)
        self.embedding_model: str = self.config.get('Search', 'EmbeddingModel', fallback='text-embedding-3-small')

        # --- Response Synthesis ---
        self.article_floor: float = self.config.getfloat('Response', 'ArticleFloor', fallback=0.4)
        self.record_floor: float = self.config.getfloat('Response', 'RecordFloor', fallback=0.3)
        self.max_articles: int = self.config.getint('Response', 'MaxArticles', fallback=2)
        self.max_records: int = self.config.getint('Response', 'MaxRecords', fallback=2)

        # --- Comment Duplicate Suppression ---
        self.dedup_window_seconds: float = self.config.getfloat('Dedup', 'WindowSeconds', fallback=5.0)
        self.dedup_purge_after_seconds: float = self.config.getfloat('Dedup', 'PurgeAfterSeconds', fallback=60.0)

        # --- Supabase Table/Function Names ---
        self.tables: Dict[str, str] = {
            'tickets': self.config.get('Supabase', 'TicketsTable', fallback='tickets'),
            'activities': self.config.get('Supabase', 'ActivitiesTable', fallback='ticket_activities'),
            'audit': self.config.get('Supabase', 'AuditTable', fallback='agent_action_log'),
            'articles': self.config.get('Supabase', 'ArticlesTable', fallback='knowledge_base_articles'),
        }
        self.match_tickets_function: str = self.config.get('Supabase', 'MatchTicketsFunction', fallback='match_tickets')
        self.match_articles_function: str = self.config.get('Supabase', 'MatchArticlesFunction', fallback='match_kb_articles')

        # --- Optional chat-model classifier ---
        self.llm_enabled: bool = self.config.getboolean('LLM', 'Enabled', fallback=False)
        self.llm_model: str = self.config.get('LLM', 'Model', fallback='gpt-4o-mini')
        self.llm_temperature: float = self.config.getfloat('LLM', 'Temperature', fallback=0.0)

        self._validate_essential_configs()

    def _parse_keywords_string(self, keyword_string: str) -> List[str]:
        """Helper to parse a comma-separated string of keywords into a list of lowercased strings."""
        return [kw.strip().lower() for kw in keyword_string.split(',') if kw.strip()]

    def _validate_essential_configs(self):
        """Validates that essential configurations are present."""
        essential_env_vars = {
            "Supabase URL": self.supabase_url,
            "Supabase Service Role Key": self.supabase_key,
            "OpenAI API Key": self.openai_api_key,
        }
        for name, var in essential_env_vars.items():
            if not var:
                logger.warning(f"Essential environment variable for '{name}' is not set. Functionality relying on it may fail.")

        if not self.search_keywords and not self.question_words:
            logger.warning("No search cues defined in [Intent]. Messages will never trigger a search.")
        if not self.action_cues:
            logger.warning("No action cues defined in [Intent]. Messages will never trigger a ticket action.")
        if self.dedup_purge_after_seconds < self.dedup_window_seconds:
            logger.warning(
                f"[Dedup] PurgeAfterSeconds ({self.dedup_purge_after_seconds}) is shorter than "
                f"WindowSeconds ({self.dedup_window_seconds}); duplicates may slip through."
            )
