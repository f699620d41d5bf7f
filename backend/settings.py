import os
import logging

logger = logging.getLogger(__name__)


DEFAULT_SYSTEM_PROMPT = (
    "You are a professional AI Life Coach. You listen carefully to the user's thoughts "
    "and worries and give warm, professional and constructive advice. Talk with the user "
    "as a friend and help them grow and solve their problems."
)


def _env_flag(value: str) -> bool:
    return value.strip().lower() not in ("0", "false", "no", "off", "")


class Settings:
    # Default upstream endpoint: Volcano Ark's OpenAI-compatible chat completions API
    DEFAULT_API_URL = "https://ark.cn-beijing.volces.com/api/v3/chat/completions"
    DEFAULT_MODEL = "deepseek-r1-250528"
    PLACEHOLDER_API_KEY = "your_default_api_key_here"

    def __init__(self, environ=None):
        env = os.environ if environ is None else environ

        self._api_url = env.get("DEEPSEEK_API_URL") or env.get("API_URL") or self.DEFAULT_API_URL
        self._api_key = env.get("DEEPSEEK_API_KEY") or env.get("API_KEY") or self.PLACEHOLDER_API_KEY
        self._model = env.get("MODEL") or self.DEFAULT_MODEL
        self._request_timeout = float(env.get("REQUEST_TIMEOUT", "60"))
        self._temperature = float(env.get("TEMPERATURE", "0.6"))
        self._port = int(env.get("PORT", "3000"))

        # Client side: where the chat UI finds the relay and how it reads it
        self._relay_url = env.get("RELAY_URL", f"http://localhost:{self._port}/api/chat")
        self._client_streaming = _env_flag(env.get("CLIENT_STREAMING", "true"))
        self._ui_port = int(env.get("UI_PORT", "7860"))
        self._system_prompt = env.get("SYSTEM_PROMPT") or DEFAULT_SYSTEM_PROMPT

    def get_api_url(self) -> str:
        """Returns the upstream chat completions URL."""
        return self._api_url

    def get_api_key(self) -> str:
        return self._api_key

    def has_api_key(self) -> bool:
        """Returns False while the credential is still the placeholder."""
        return self._api_key != self.PLACEHOLDER_API_KEY

    def get_model(self) -> str:
        return self._model

    def get_request_timeout(self) -> float:
        """Request-level timeout in seconds for the upstream call."""
        return self._request_timeout

    def get_temperature(self) -> float:
        return self._temperature

    def get_port(self) -> int:
        return self._port

    def get_relay_url(self) -> str:
        return self._relay_url

    def get_client_streaming(self) -> bool:
        """
        Whether the client transport supports incremental reads.

        When false the reply body is parsed as one non-streamed completion
        (``choices[0].message.content``). The relay in this repo always answers
        with an event stream, so turn this off only when RELAY_URL points at a
        non-streaming completions endpoint.
        """
        return self._client_streaming

    def get_ui_port(self) -> int:
        return self._ui_port

    def get_system_prompt(self) -> str:
        return self._system_prompt

    def warn_if_unconfigured(self):
        if not self.has_api_key():
            logger.warning("API_KEY not set in environment variables. Using default placeholder.")
            logger.warning("Set DEEPSEEK_API_KEY or API_KEY; upstream requests will be rejected until then.")


settings = Settings()
