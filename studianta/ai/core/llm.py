"""
Studianta - Unified LLM Client
Single entry point to the generative-AI completion service, with telemetry.
"""
import logging
from dataclasses import dataclass
from typing import Any, Optional

from langchain_core.language_models import BaseChatModel
from langchain_core.messages import HumanMessage, SystemMessage

from studianta.ai.core.telemetry import get_tracer, trace_llm_call
from studianta.core.config import settings

logger = logging.getLogger(__name__)


@dataclass
class LLMResponse:
    """Standardized response from LLM client."""
    content: str
    model: str
    tokens_prompt: int = 0
    tokens_completion: int = 0
    tokens_total: int = 0
    raw_response: Any = None


def _message_text(content: Any) -> str:
    """Flatten LangChain message content (str or list of content blocks)."""
    if content is None:
        return ""
    if isinstance(content, str):
        return content
    parts = []
    for block in content:
        if isinstance(block, str):
            parts.append(block)
        elif isinstance(block, dict) and block.get("type") == "text":
            parts.append(block.get("text", ""))
    return "".join(parts)


class LLMClient:
    """
    Unified LLM Client for all AI Agents.

    Features:
    - Multi-provider support (Gemini, OpenAI, Anthropic)
    - JSON response-format hint where the provider supports it
    - Built-in telemetry (OpenTelemetry)
    - Token usage tracking
    """

    def __init__(
        self,
        provider: str = None,
        model: str = None,
        temperature: float = 0.7,
        timeout: int = None,
        json_mode: bool = False,
        chat_model: Optional[BaseChatModel] = None,
    ):
        """
        Initialize the LLM client.

        Args:
            provider: LLM provider ('google', 'openai' or 'anthropic'). Defaults to settings.
            model: Model name. Defaults to settings.
            temperature: Sampling temperature.
            timeout: Request timeout in seconds.
            json_mode: Ask the provider for a JSON-object response.
            chat_model: Pre-built LangChain chat model (overrides provider setup).
        """
        self.provider = provider or settings.LLM_PROVIDER
        self.model = model or {
            "google": settings.GEMINI_MODEL,
            "openai": settings.OPENAI_MODEL,
            "anthropic": settings.ANTHROPIC_MODEL,
        }[self.provider]
        self.temperature = temperature
        self.timeout = timeout or settings.LLM_TIMEOUT_SECONDS
        self.json_mode = json_mode

        self._llm = chat_model

    @property
    def has_credentials(self) -> bool:
        """Whether a call can be attempted (injected model or provider API key set)."""
        if self._llm is not None:
            return True
        return bool({
            "google": settings.GEMINI_API_KEY,
            "openai": settings.OPENAI_API_KEY,
            "anthropic": settings.ANTHROPIC_API_KEY,
        }[self.provider])

    @property
    def llm(self) -> BaseChatModel:
        """Lazy-load the LLM instance."""
        if self._llm is None:
            if self.provider == "google":
                from langchain_google_genai import ChatGoogleGenerativeAI
                kwargs = {"response_mime_type": "application/json"} if self.json_mode else {}
                self._llm = ChatGoogleGenerativeAI(
                    model=self.model,
                    google_api_key=settings.GEMINI_API_KEY,
                    temperature=self.temperature,
                    timeout=self.timeout,
                    **kwargs,
                )
            elif self.provider == "openai":
                from langchain_openai import ChatOpenAI
                kwargs = (
                    {"model_kwargs": {"response_format": {"type": "json_object"}}}
                    if self.json_mode else {}
                )
                self._llm = ChatOpenAI(
                    model=self.model,
                    api_key=settings.OPENAI_API_KEY,
                    temperature=self.temperature,
                    timeout=self.timeout,
                    **kwargs,
                )
            else:
                # Anthropic has no JSON response format; the prompt enforces it
                from langchain_anthropic import ChatAnthropic
                self._llm = ChatAnthropic(
                    model=self.model,
                    api_key=settings.ANTHROPIC_API_KEY,
                    temperature=self.temperature,
                    timeout=self.timeout,
                )
        return self._llm

    async def generate(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        agent_name: str = "LLMClient",
    ) -> LLMResponse:
        """
        Generate a response from the LLM.

        Args:
            prompt: The user prompt.
            system_prompt: Optional system instruction.
            agent_name: Name of the calling agent (for telemetry).

        Returns:
            LLMResponse with content and metadata. Content may be empty;
            callers decide whether that is an error.
        """
        tracer = get_tracer()

        with tracer.start_as_current_span("llm.generate") as span:
            span.set_attribute("llm.model", self.model)
            span.set_attribute("llm.provider", self.provider)
            span.set_attribute("llm.temperature", self.temperature)
            span.set_attribute("llm.json_mode", self.json_mode)
            span.set_attribute("agent.name", agent_name)

            messages = []
            if system_prompt:
                messages.append(SystemMessage(content=system_prompt))
            messages.append(HumanMessage(content=prompt))

            span.set_attribute("llm.prompt_length", len(prompt))

            response = await self.llm.ainvoke(messages)
            content = _message_text(getattr(response, "content", None))

            # Extract token usage if available
            tokens_prompt = 0
            tokens_completion = 0
            usage = getattr(response, "usage_metadata", None)
            if usage:
                tokens_prompt = usage.get("input_tokens", 0)
                tokens_completion = usage.get("output_tokens", 0)

            tokens_total = tokens_prompt + tokens_completion
            trace_llm_call(
                model=self.model,
                prompt_tokens=tokens_prompt,
                completion_tokens=tokens_completion,
                total_tokens=tokens_total,
            )

            span.set_attribute("llm.response_length", len(content))
            logger.debug(
                "%s: %s returned %d chars (%d tokens)",
                agent_name, self.model, len(content), tokens_total,
            )

            return LLMResponse(
                content=content,
                model=self.model,
                tokens_prompt=tokens_prompt,
                tokens_completion=tokens_completion,
                tokens_total=tokens_total,
                raw_response=response,
            )


