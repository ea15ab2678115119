"""
Studianta - Base Agent
Abstract base class for all AI Agents in the platform.
"""
import logging
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional

from studianta.ai.core.llm import LLMClient
from studianta.ai.core.telemetry import get_tracer

logger = logging.getLogger(__name__)


class AgentState(Enum):
    """Agent execution states."""
    IDLE = "idle"
    PLANNING = "planning"
    EXECUTING = "executing"
    COMPLETED = "completed"
    ERROR = "error"


@dataclass
class AgentContext:
    """Context passed to agent during execution."""
    session_id: str
    user_input: str
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class AgentResult:
    """Result from agent execution."""
    success: bool
    output: Any
    state: AgentState
    metadata: Dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None
    exception: Optional[BaseException] = None

    def unwrap(self) -> Any:
        """Return the output or re-raise the failure that produced this result."""
        if self.success:
            return self.output
        if self.exception is not None:
            raise self.exception
        raise RuntimeError(self.error or "Agent execution failed")


class BaseAgent(ABC):
    """
    Abstract base class for AI Agents.

    Each agent follows the Plan-Execute pattern:
    1. plan() - Determine what to send (pure, no I/O)
    2. execute() - Perform the call and shape the output
    """

    # Agent metadata (override in subclasses)
    name: str = "BaseAgent"
    description: str = "Base agent class"
    version: str = "1.0.0"

    def __init__(
        self,
        llm_client: Optional[LLMClient] = None,
        temperature: float = 0.7,
        json_mode: bool = False,
    ):
        """
        Initialize the agent.

        Args:
            llm_client: Custom LLM client (built from settings if not provided).
            temperature: LLM temperature for this agent.
            json_mode: Whether the agent expects JSON-object responses.
        """
        self.llm = llm_client or LLMClient(temperature=temperature, json_mode=json_mode)
        self._state = AgentState.IDLE

    @property
    def state(self) -> AgentState:
        """Get current agent state."""
        return self._state

    @abstractmethod
    async def plan(self, context: AgentContext) -> Dict[str, Any]:
        """
        Planning phase: Determine what actions to take.

        Args:
            context: The agent context with user input and metadata.

        Returns:
            A plan dictionary with actions to execute.
        """
        pass

    @abstractmethod
    async def execute(self, context: AgentContext, plan: Dict[str, Any]) -> AgentResult:
        """
        Execution phase: Perform the planned actions.

        Args:
            context: The agent context.
            plan: The plan from the planning phase.

        Returns:
            AgentResult with the execution outcome.
        """
        pass

    async def run(
        self,
        user_input: str,
        session_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> AgentResult:
        """
        Run the agent with the given input.

        This is the main entry point for agent execution.
        It orchestrates the plan-execute cycle. Failures are captured in the
        returned AgentResult (see `AgentResult.unwrap`).
        """
        tracer = get_tracer()

        with tracer.start_as_current_span(f"{self.name}.run") as span:
            span.set_attribute("agent.name", self.name)
            span.set_attribute("agent.version", self.version)

            try:
                session_id = session_id or str(uuid.uuid4())
                span.set_attribute("session.id", session_id)

                context = AgentContext(
                    session_id=session_id,
                    user_input=user_input,
                    metadata=metadata or {},
                )

                # Planning phase
                self._state = AgentState.PLANNING
                with tracer.start_as_current_span(f"{self.name}.plan"):
                    plan = await self.plan(context)

                span.add_event("planning_completed", {"plan_keys": str(list(plan.keys()))})

                # Execution phase
                self._state = AgentState.EXECUTING
                with tracer.start_as_current_span(f"{self.name}.execute"):
                    result = await self.execute(context, plan)

                span.add_event("execution_completed", {"success": result.success})

                self._state = AgentState.COMPLETED if result.success else AgentState.ERROR
                return result

            except Exception as e:
                self._state = AgentState.ERROR
                span.record_exception(e)
                logger.warning("%s failed: %r", self.name, e)

                return AgentResult(
                    success=False,
                    output=None,
                    state=AgentState.ERROR,
                    error=str(e),
                    exception=e,
                )

    def __repr__(self) -> str:
        return f"<{self.name} v{self.version} state={self.state.value}>"
