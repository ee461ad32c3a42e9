import inspect
from typing import Any, Callable

from pydantic import BaseModel, Field


class Tool(BaseModel):
    """A function the model may ask the caller to invoke.

    Only the schema travels to the provider; executing the call is up to
    the caller once a completed :class:`~switchboard.streaming.ToolCall`
    comes back.
    """

    name: str
    description: str = ""
    parameters: dict[str, Any] = Field(
        default_factory=lambda: {"type": "object", "properties": {}}
    )

    @classmethod
    def from_function(cls, func: Callable, description: str | None = None) -> "Tool":
        return cls(
            name=func.__name__,
            description=description or inspect.getdoc(func) or "",
            parameters={
                "type": "object",
                "properties": parse_properties(func),
                "required": get_required_params(func),
            },
        )


def normalize_to_json_type(python_type: Any) -> str:
    type_mapping = {
        'str': 'string',
        'int': 'integer',
        'float': 'number',
        'bool': 'boolean',
        'NoneType': 'null',
        'dict': 'object',
        'list': 'array',
        'tuple': 'array',  # closest equivalent
        'set': 'array',    # closest equivalent
    }
    name = getattr(python_type, "__name__", str(python_type))
    return type_mapping.get(name, 'string')


def parse_properties(func: Callable) -> dict[str, dict[str, Any]]:
    signature = inspect.signature(func)
    properties = {}
    for param_name, param in signature.parameters.items():
        if param.annotation is inspect.Parameter.empty:
            json_type = 'string'
        else:
            json_type = normalize_to_json_type(param.annotation)
        prop: dict[str, Any] = {"type": json_type, "description": ""}
        if json_type == 'array':
            prop["items"] = {"type": "string"}
        properties[param_name] = prop
    return properties


def get_required_params(func: Callable) -> list[str]:
    signature = inspect.signature(func)
    return [
        name
        for name, param in signature.parameters.items()
        if param.default is inspect.Parameter.empty
    ]


def tool(func: Callable) -> Tool:
    """Decorator turning a plain function into a :class:`Tool` schema.

    Example::

        @tool
        def search_papers(query: str, limit: int = 10):
            \"\"\"Search the library for papers matching ``query``.\"\"\"
    """
    return Tool.from_function(func)
