from typing import Any, Dict, List, Optional

from ...llm_core.tools.registry import ToolRegistry


class OpenAIToolRegistry(ToolRegistry):
    """
    A specialized ToolRegistry for OpenAI models.

    This class extends the base ToolRegistry to provide OpenAI-specific
    tool object generation for the chat completions ``tools`` parameter.
    """

    @property
    def tool_object(self) -> Optional[List[Dict[str, Any]]]:
        """
        Generates a list of tool definitions suitable for the OpenAI API
        based on the registered tools.

        Returns:
            A list of tool dictionaries, or None if no tools are registered.
        """
        if not self.tools:
            return None

        tools_list = []
        for tool in self.tools.values():
            function_def: Dict[str, Any] = {
                "name": tool.name,
                "description": tool.description,
                # OpenAI expects an object schema even for tools without parameters.
                "parameters": tool.parameters or {"type": "object", "properties": {}},
            }
            tools_list.append({"type": "function", "function": function_def})

        return tools_list
