# AI Core Module - LLM access and tracing

from studianta.ai.core.llm import LLMClient, LLMResponse
from studianta.ai.core.telemetry import init_telemetry, get_tracer, agent_span, trace_llm_call

__all__ = [
    # LLM
    "LLMClient", "LLMResponse",
    # Telemetry
    "init_telemetry", "get_tracer", "agent_span", "trace_llm_call",
]
