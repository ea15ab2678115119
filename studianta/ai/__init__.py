"""
Studianta - AI Module Initialization
Exports the exam-generation agent, its parser and the LLM core.
"""
from studianta.ai.agents import (
    BaseAgent,
    AgentContext,
    AgentResult,
    AgentState,
    ExaminerAgent,
    examiner_agent,
)
from studianta.ai.exam_parser import (
    AnswerKey,
    ChoiceKey,
    TextKey,
    answer_key,
    parse_exam_response,
)

# Core modules
from studianta.ai.core.llm import LLMClient, LLMResponse
from studianta.ai.core.telemetry import init_telemetry, get_tracer, agent_span

__all__ = [
    # Agents
    "BaseAgent",
    "AgentContext",
    "AgentResult",
    "AgentState",
    "ExaminerAgent",
    "examiner_agent",

    # Parser
    "AnswerKey",
    "ChoiceKey",
    "TextKey",
    "answer_key",
    "parse_exam_response",

    # Core
    "LLMClient",
    "LLMResponse",

    # Telemetry
    "init_telemetry",
    "get_tracer",
    "agent_span",
]
