import os
from langchain_ollama import OllamaLLM

class Settings:
    def __init__(self):
        self.debug = os.getenv("DEBUG", "True").lower() == "true"
        self.log_level = os.getenv("LOG_LEVEL", "INFO")
        self.host = os.getenv("HOST", "0.0.0.0")
        self.port = int(os.getenv("PORT", "8000"))
        self.contact_email = os.getenv("CONTACT_EMAIL", "user@example.com")
        self.crossref_base_url = os.getenv("CROSSREF_BASE_URL", "https://api.crossref.org")
        self.openalex_base_url = os.getenv("OPENALEX_BASE_URL", "https://api.openalex.org")
        self.zotero_base_url = os.getenv("ZOTERO_BASE_URL", "https://api.zotero.org")

        # Record store (Zotero Web API)
        self.zotero_api_key = os.getenv("ZOTERO_API_KEY")
        self.zotero_library_id = os.getenv("ZOTERO_LIBRARY_ID")
        self.zotero_library_type = os.getenv("ZOTERO_LIBRARY_TYPE", "user")

        # AI fallback (local Ollama model)
        self.ollama_base_url = os.getenv("OLLAMA_BASE_URL", "http://localhost:11434")
        self.ollama_model = os.getenv("OLLAMA_MODEL", "gemma3:4b")
        self.llm_temperature = float(os.getenv("LLM_TEMPERATURE", "0.1"))

        # API timeout and rate limiting
        self.api_timeout = float(os.getenv("API_TIMEOUT", "30"))
        self.search_limit = int(os.getenv("SEARCH_LIMIT", "3"))
        self.rate_limit_delay = float(os.getenv("RATE_LIMIT_DELAY", "1.5"))
        self.circuit_breaker_threshold = int(os.getenv("CIRCUIT_BREAKER_THRESHOLD", "3"))
        self.circuit_breaker_timeout = int(os.getenv("CIRCUIT_BREAKER_TIMEOUT", "300"))

    @property
    def user_agent(self) -> str:
        return f"BiblioReconciler/1.0 (mailto:{self.contact_email})"

    @property
    def zotero_configured(self) -> bool:
        return bool(self.zotero_api_key and self.zotero_library_id)

settings = Settings()

def get_llm(json_mode: bool = True) -> OllamaLLM:
    llm = OllamaLLM(
        model=settings.ollama_model,
        base_url=settings.ollama_base_url,
        temperature=settings.llm_temperature,
        format="json" if json_mode else "",
    )
    return llm
