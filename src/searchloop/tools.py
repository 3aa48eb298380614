import json
import logging
from typing import Any

from pydantic import BaseModel, Field

from searchloop.errors import ArgumentParseError, ToolNotFoundError
from searchloop.message import ToolCall

logger = logging.getLogger(__name__)


class ToolCallResult(BaseModel):
    tool_name: str
    output: str
    # structured result, for the runner's own bookkeeping
    payload: Any = Field(default=None, exclude=True)


class Tool(BaseModel):
    """A tool the model may call.

    Subclasses declare their JSON-schema ``properties`` and ``required``
    fields and implement :meth:`execute`, which receives the parsed
    arguments and returns something JSON-serializable (a dict, a string,
    or a pydantic model).
    """

    name: str
    description: str
    properties: dict[str, dict] = Field(default_factory=dict)
    required: list[str] = Field(default_factory=list)
    model_config = {"arbitrary_types_allowed": True}

    def model_dump(self, **kwargs):
        """Override to return the JSON schema instead of internal attributes"""
        return self.get_schema()

    def model_dump_json(self, **kwargs):
        """Override JSON serialization"""
        return json.dumps(self.get_schema())

    def get_schema(self) -> dict:
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": {
                    "type": "object",
                    "properties": self.properties,
                    "required": self.required,
                },
            },
        }

    def parse_arguments(self, raw: str) -> dict[str, Any]:
        """Parse the complete argument text of one call.

        Raises:
            ArgumentParseError: If *raw* is not a JSON object.
        """
        if not raw.strip():
            return {}
        try:
            params = json.loads(raw)
        except json.JSONDecodeError as e:
            raise ArgumentParseError(self.name, f"malformed JSON ({e})") from e
        if not isinstance(params, dict):
            raise ArgumentParseError(
                self.name, f"expected an object, got {type(params).__name__}"
            )
        return params

    async def execute(self, arguments: dict[str, Any]) -> Any:
        raise NotImplementedError

    def render(self, payload: Any) -> str:
        if isinstance(payload, BaseModel):
            return payload.model_dump_json(by_alias=True)
        if isinstance(payload, str):
            return payload
        return json.dumps(payload)


class ToolInvoker:
    """Dispatches resolved tool calls to registered tools.

    One call, one ``execute``. Nothing is retried here.
    """

    def __init__(self, tools: list[Tool]):
        self.tool_registry = {t.name: t for t in tools}

    def schemas(self) -> list[dict]:
        return [t.model_dump() for t in self.tool_registry.values()]

    async def invoke(self, call: ToolCall) -> ToolCallResult:
        """Run *call* once.

        Raises:
            ToolNotFoundError: Unknown tool name.
            ArgumentParseError: Arguments are malformed or invalid.
            TransportError: The tool's backend request failed.
        """
        tool_obj = self.tool_registry.get(call.name)
        if tool_obj is None:
            raise ToolNotFoundError(call.name)

        params = tool_obj.parse_arguments(call.arguments)
        logger.info(f"Calling {call.name} with {params}")
        payload = await tool_obj.execute(params)
        return ToolCallResult(
            tool_name=call.name,
            output=tool_obj.render(payload),
            payload=payload,
        )


def error_payload(error: Exception | str) -> str:
    """Tool-result content reporting a recoverable failure to the model."""
    return json.dumps({"error": str(error)})
