# AI Agents Package - Plan/Execute agents for exam generation
from studianta.ai.agents.base import BaseAgent, AgentContext, AgentResult, AgentState
from studianta.ai.agents.examiner import (
    ExaminerAgent,
    examiner_agent,
    build_system_instruction,
    build_user_prompt,
)

__all__ = [
    # Base
    "BaseAgent",
    "AgentContext",
    "AgentResult",
    "AgentState",

    # Specialized Agents
    "ExaminerAgent",

    # Singleton Instances
    "examiner_agent",

    # Prompt builders
    "build_system_instruction",
    "build_user_prompt",
]
