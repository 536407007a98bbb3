"""
Schema definitions for provider <-> agent <-> tool messages.

These data models serve as the contract between the completion provider, the conversation driver,
and the dynamically generated tools.  We keep them separate from runtime logic so they can be
imported anywhere without side-effects.
"""

from typing import (
    Any,
    List,
    Literal,
    Optional,
)

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    model_validator,
)


class Turn(BaseModel):
    """One message of the conversation."""

    role: Literal["system", "user", "assistant"]
    content: str


class ToolSpec(BaseModel):
    """A named unit of executable behavior, kept as source text until it runs."""

    name: str = Field(..., min_length=1, description="Unique, case-sensitive tool name")
    description: str = Field(..., description="Shown to the completion provider")
    implementation: str = Field(
        ..., description="Python function body using arg0, arg1, ... and ending in a return"
    )


class ToolResult(BaseModel):
    """Outcome of a single tool invocation."""

    success: bool
    result: Any = None
    error: Optional[str] = None

    @model_validator(mode="after")
    def _check_outcome(self) -> "ToolResult":
        if self.success and self.error is not None:
            raise ValueError("a successful result carries no error")
        if not self.success:
            if not self.error:
                raise ValueError("a failed result needs a non-empty error")
            if self.result is not None:
                raise ValueError("a failed result carries no value")
        return self

    @classmethod
    def ok(cls, result: Any) -> "ToolResult":
        """Build a successful result."""
        return cls(success=True, result=result)

    @classmethod
    def fail(cls, error: str) -> "ToolResult":
        """Build an unsuccessful result."""
        return cls(success=False, error=error or "unknown error")


class Action(BaseModel):
    """A tool call requested by the completion provider."""

    tool: str
    args: List[Any] = Field(default_factory=list, description="Positional arguments")


class Decision(BaseModel):
    """Structured output of one completion round.

    Every key is required; ``actions`` and ``newTools`` may be empty but must be present.
    """

    model_config = ConfigDict(populate_by_name=True)

    reasoning: str
    actions: List[Action]
    new_tools: List[ToolSpec] = Field(..., alias="newTools")
    response: str
