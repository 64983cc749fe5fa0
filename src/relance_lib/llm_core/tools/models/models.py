from typing import Optional, Any, Callable, Type, Dict
from pydantic import BaseModel


class ToolDefinition(BaseModel):
    """
    Represents the definition of a tool that can be invoked by the model.

    Attributes:
        name: The unique name of the tool.
        description: A brief description of what the tool does.
        func: The handler implementing the tool. Sync callables run in a worker
              thread, coroutine functions are awaited.
        parameters: JSON schema describing the handler's arguments.
        args_model: Optional Pydantic model used for validating and coercing arguments.
        accepts_auth_context: Whether the handler takes an ``auth_context`` keyword.
    """

    name: str
    description: str
    func: Callable
    parameters: Optional[Dict[str, Any]] = None
    args_model: Optional[Type[BaseModel]] = None
    accepts_auth_context: bool = False
