"""Tool registry abstraction: name to handler resolution and argument validation."""

import inspect
import json
from abc import abstractmethod, ABC
from typing import Callable, Dict, Any, List, Union, Optional, cast

import jsonref  # type: ignore
from jsonschema import Draft202012Validator, SchemaError
from jsonschema import ValidationError as SchemaValidationError
from pydantic import ValidationError, create_model

from ..models import ToolDefinition
from ..schema import SchemaValidator, ToolParameterFactory
from ...exceptions import ToolNotFoundError, ToolRegistrationError, ToolValidationError
from ...logger import get_logger

logger = get_logger(__name__)

AUTH_CONTEXT_PARAM = "auth_context"


class ToolRegistry(ABC):
    """
    A central registry to manage and access all tools the model may invoke.

    This class holds the tool declarations advertised to the model and maps
    tool names to their handler implementations. New tools are additive
    registrations; dispatch never branches on tool names.
    """

    def __init__(self) -> None:
        """Initialize the ToolRegistry."""
        self.tools: Dict[str, ToolDefinition] = {}
        self._validators: Dict[str, Draft202012Validator] = {}

    def register(
        self,
        name_or_tool: Union[str, ToolDefinition, Callable],
        description: Optional[str] = None,
        func: Optional[Callable] = None,
        parameters: Optional[Dict[str, Any]] = None,
    ) -> None:
        """
        Register a new tool.

        A tool can be registered from a `ToolDefinition`, from a documented callable
        (its parameter schema is generated from the signature), or from a name,
        description, handler and explicit JSON schema.

        Args:
            name_or_tool: Either a `ToolDefinition` object, the name of the tool (str), or a Callable.
            description: A brief description of what the tool does. Required when `parameters` are given.
            func: The handler implementing the tool. Required if `name_or_tool` is a string.
            parameters: A JSON schema for the handler's arguments. If None, it is inferred from `func`.

        Raises:
            ToolRegistrationError: If arguments are missing or the tool already exists.
        """

        if isinstance(name_or_tool, ToolDefinition):
            tool = name_or_tool
        elif callable(name_or_tool):
            tool = self._generate_tool_definition(name_or_tool, description=description)
        else:
            if func is None:
                raise ToolRegistrationError("If passing name as string, func is required.")

            if parameters is None:
                tool = self._generate_tool_definition(func, name=name_or_tool, description=description)
            else:
                if description is None:
                    raise ToolRegistrationError("If passing name and parameters, description is required.")
                if parameters.get("type", "object") != "object":
                    raise ToolRegistrationError(f"Parameters of tool '{name_or_tool}' must be an object schema.")
                SchemaValidator.assert_no_recursive_refs(parameters)
                tool = ToolDefinition(name=name_or_tool, description=description, func=func, parameters=parameters)

        if not tool.accepts_auth_context and self._accepts_auth_context(tool.func):
            tool = tool.model_copy(update={"accepts_auth_context": True})

        if tool.name in self.tools:
            msg = f"Tool '{tool.name}' is already registered."
            logger.error(msg)
            raise ToolRegistrationError(msg)

        validator = self._build_validator(tool)
        if validator is not None:
            self._validators[tool.name] = validator

        self.tools[tool.name] = tool
        logger.info(f"Successfully registered tool: '{tool.name}'")

    def unregister(self, tool_name: str) -> None:
        """Unregister a tool from the registry.

        Raises:
            ToolNotFoundError: If the tool does not exist in the registry.
        """
        if tool_name in self.tools:
            del self.tools[tool_name]
            self._validators.pop(tool_name, None)
            logger.info(f"Successfully unregistered tool: '{tool_name}'")
        else:
            raise ToolNotFoundError(f"Tool '{tool_name}' not found in the registry.")

    def tool(self, func: Callable) -> Callable:
        """A decorator to turn a function into a tool.

        Args:
            func: The function to decorate.

        Returns:
            The original function, after registering it as a tool.
        """
        self.register(func)
        return func

    def resolve(self, tool_name: str) -> ToolDefinition:
        """Return the definition registered under ``tool_name``.

        Raises:
            ToolNotFoundError: If no tool with that name is registered.
        """
        tool = self.tools.get(tool_name)
        if tool is None:
            raise ToolNotFoundError(f"Tool '{tool_name}' not found in registry.")
        return tool

    def validate(self, tool_name: str, arguments_json: Any) -> Dict[str, Any]:
        """Decode and validate raw call arguments for a tool.

        Args:
            tool_name: Name of the tool the arguments are meant for.
            arguments_json: Raw arguments as emitted by the model (JSON string, dict or None).

        Returns:
            The keyword arguments to pass to the handler.

        Raises:
            ToolNotFoundError: If the tool is unknown.
            ToolValidationError: If the arguments cannot be decoded or do not match the schema.
        """
        tool = self.resolve(tool_name)
        arguments = self._decode_arguments(tool_name, arguments_json)

        if tool.args_model is not None:
            try:
                validated = tool.args_model.model_validate(arguments)
            except ValidationError as exc:
                raise ToolValidationError(f"Argument validation failed: {exc}") from exc
            return {name: getattr(validated, name) for name in type(validated).model_fields}

        validator = self._validators.get(tool_name)
        if validator is not None:
            errors = sorted(validator.iter_errors(arguments), key=lambda e: [str(p) for p in e.absolute_path])
            if errors:
                raise ToolValidationError(
                    "Argument validation failed: " + "; ".join(self._format_schema_error(e) for e in errors)
                )

        return arguments

    @property
    @abstractmethod
    def tool_object(self) -> Any:
        """Constructs the tool declarations in the format a model provider expects.

        Returns:
            The provider-specific tool representation.
        """
        pass

    @property
    def implementations(self) -> Dict[str, Callable]:
        """Returns a dictionary mapping tool names to their handlers."""
        return {name: tool.func for name, tool in self.tools.items()}

    @property
    def names(self) -> List[str]:
        return list(self.tools)

    def __contains__(self, tool_name: object) -> bool:
        return tool_name in self.tools

    def __len__(self) -> int:
        return len(self.tools)

    @staticmethod
    def _decode_arguments(tool_name: str, raw_args: Any) -> Dict[str, Any]:
        """Normalize raw arguments into a dictionary.

        Handles JSON strings, dictionaries, or None values.

        Raises:
            ToolValidationError: If arguments cannot be parsed or are not an object.
        """
        if raw_args is None or (isinstance(raw_args, str) and not raw_args.strip()):
            return {}

        if isinstance(raw_args, dict):
            return dict(raw_args)

        if isinstance(raw_args, str):
            try:
                parsed = json.loads(raw_args)
            except json.JSONDecodeError as exc:
                raise ToolValidationError(f"Failed to parse arguments for tool '{tool_name}': {exc}") from exc

            if parsed is None:
                return {}
            if not isinstance(parsed, dict):
                raise ToolValidationError(
                    f"Failed to parse arguments for tool '{tool_name}': arguments must decode to a JSON object."
                )
            return parsed

        raise ToolValidationError(
            f"Failed to parse arguments for tool '{tool_name}': unsupported type {type(raw_args).__name__}."
        )

    @staticmethod
    def _build_validator(tool: ToolDefinition) -> Optional[Draft202012Validator]:
        """Compile the JSON schema of a tool registered without a pydantic model.

        Raises:
            ToolRegistrationError: If the declared parameters are not a valid JSON schema.
        """
        if tool.args_model is not None or not tool.parameters:
            return None
        try:
            Draft202012Validator.check_schema(tool.parameters)
        except SchemaError as exc:
            msg = f"Parameters of tool '{tool.name}' are not a valid JSON schema: {exc.message}"
            logger.error(msg)
            raise ToolRegistrationError(msg) from exc
        return Draft202012Validator(tool.parameters)

    @staticmethod
    def _format_schema_error(error: SchemaValidationError) -> str:
        pointer = "/" + "/".join(str(part) for part in error.absolute_path) if error.absolute_path else "$"
        return f"{error.message} (at {pointer})"

    @staticmethod
    def _accepts_auth_context(func: Callable) -> bool:
        try:
            return AUTH_CONTEXT_PARAM in inspect.signature(func).parameters
        except (TypeError, ValueError):
            return False

    def _generate_tool_definition(
        self, func: Callable, name: Optional[str] = None, description: Optional[str] = None
    ) -> ToolDefinition:
        """Generate a ToolDefinition from a callable handler.

        Args:
            func: The function to generate a definition for.
            name: Optional name override for the tool.
            description: Optional description override for the tool.

        Returns:
            A ToolDefinition object containing the tool's metadata and schema.

        Raises:
            ToolValidationError: If the function is missing a docstring or parameter descriptions.
        """

        tool_name = name or func.__name__
        if description is None:
            description = self._get_docstring_from_func(func, tool_name)

        signature = inspect.signature(func)
        fields = self._build_fields(signature, tool_name)

        dynamic_params_model = create_model(f"{tool_name}Params", **cast(Dict[str, Any], fields))
        raw_schema = dynamic_params_model.model_json_schema()
        SchemaValidator.assert_no_recursive_refs(raw_schema)

        # proxies=False ensures we get a plain dict back, not JsonRef objects
        parameters_schema = jsonref.replace_refs(raw_schema, proxies=False)
        parameters_schema = SchemaValidator.sanitize_schema(parameters_schema)

        return ToolDefinition(
            name=tool_name,
            description=description,
            func=func,
            parameters=parameters_schema,
            args_model=dynamic_params_model,
            accepts_auth_context=AUTH_CONTEXT_PARAM in signature.parameters,
        )

    @staticmethod
    def _get_docstring_from_func(func: Callable, tool_name: str) -> str:
        doc = inspect.getdoc(func)
        if not doc:
            msg = f"Tool '{tool_name}' missing docstring. Models need a description of what the tool does."
            logger.error(msg)
            raise ToolValidationError(msg)
        return doc

    @staticmethod
    def _build_fields(signature: inspect.Signature, tool_name: str) -> Dict[str, Any]:
        fields: Dict[str, Any] = {}
        for param_name, param in signature.parameters.items():
            if param_name in ("self", AUTH_CONTEXT_PARAM):
                continue
            ft = ToolParameterFactory.build_field_tuple(param_name=param_name, param=param, tool_name=tool_name)
            fields[param_name] = (ft.annotation, ft.field)
        return fields
