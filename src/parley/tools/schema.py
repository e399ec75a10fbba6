"""Tool descriptors and the registry the model may call into."""

from __future__ import annotations

import inspect
from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, NoReturn, TypeVar, cast

from pydantic import BaseModel, TypeAdapter

ModelT = TypeVar("ModelT", bound=BaseModel)


class ToolKind(str, Enum):
    FUNCTION = "function"
    RESOURCE = "resource"
    PROMPT = "prompt"


class ToolOption(str, Enum):
    """Whether the model may call a tool."""

    ENABLED = "enabled"
    DISABLED = "disabled"
    ASK_BEFORE_RUN = "ask_before_run"


def _to_snake_case(name: str) -> str:
    return "".join(["_" + c.lower() if c.isupper() else c for c in name]).lstrip("_")


def normalize_tool_name(name: str) -> str:
    """Lowercase and turn dashes and spaces into underscores."""
    return name.strip().replace("-", "_").replace(" ", "_").lower()


def _raise_value_error(message: str, *, cause: Exception | None = None) -> NoReturn:
    if cause is None:
        raise ValueError(message)
    raise ValueError(message) from cause


def _schema_from_annotation(annotation: Any) -> dict[str, Any]:
    if annotation is inspect.Parameter.empty:
        annotation = Any
    try:
        return TypeAdapter(annotation).json_schema()
    except Exception as exc:
        _raise_value_error(f"Failed to build JSON schema for type: {annotation!r}", cause=exc)


def _signature(func: Callable[..., Any]) -> inspect.Signature:
    try:
        return inspect.signature(func, eval_str=True)
    except NameError:
        return inspect.signature(func)


def _schema_from_signature(signature: inspect.Signature) -> dict[str, Any]:
    properties: dict[str, Any] = {}
    required: list[str] = []
    for param in signature.parameters.values():
        if param.kind in (param.VAR_POSITIONAL, param.VAR_KEYWORD):
            continue
        properties[param.name] = _schema_from_annotation(param.annotation)
        if param.default is param.empty:
            required.append(param.name)
    schema: dict[str, Any] = {"type": "object", "properties": properties}
    if required:
        schema["required"] = required
    return schema


@dataclass(frozen=True)
class Tool:
    """A function, resource or prompt the model can ask the client to run."""

    name: str
    description: str = ""
    parameters: dict[str, Any] = field(default_factory=lambda: {"type": "object", "properties": {}})
    handler: Callable[..., Any] | None = None
    kind: ToolKind = ToolKind.FUNCTION
    option: ToolOption = ToolOption.ENABLED

    @property
    def enabled(self) -> bool:
        return self.option is not ToolOption.DISABLED

    @property
    def runnable(self) -> bool:
        return self.handler is not None

    def schema(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "parameters": self.parameters,
        }

    def run(self, **kwargs: Any) -> Any:
        if self.handler is None:
            raise TypeError(f"Tool '{self.name}' is schema-only and cannot be executed.")
        handler = cast(Callable[..., Any], self.handler)
        return handler(**kwargs)

    def with_option(self, option: ToolOption) -> Tool:
        return replace(self, option=option)

    @classmethod
    def from_callable(
        cls,
        func: Callable[..., Any],
        *,
        name: str | None = None,
        description: str | None = None,
        kind: ToolKind = ToolKind.FUNCTION,
        option: ToolOption = ToolOption.ENABLED,
    ) -> Tool:
        func_name = getattr(func, "__name__", None) or func.__class__.__name__
        tool_name = name or _to_snake_case(func_name)
        tool_description = description if description is not None else (inspect.getdoc(func) or "")
        parameters = _schema_from_signature(_signature(func))
        return cls(
            name=tool_name,
            description=tool_description,
            parameters=parameters,
            handler=func,
            kind=kind,
            option=option,
        )

    @classmethod
    def from_model(
        cls,
        model: type[ModelT],
        handler: Callable[[ModelT], Any] | None = None,
        *,
        name: str | None = None,
        description: str | None = None,
        kind: ToolKind = ToolKind.FUNCTION,
    ) -> Tool:
        """Tool whose arguments are validated through a Pydantic model before ``handler`` runs."""
        tool_name = name or _to_snake_case(model.__name__)
        tool_description = description if description is not None else (model.__doc__ or "")

        def _handler(**kwargs: Any) -> Any:
            parsed = model(**kwargs)
            if handler is None:
                return parsed.model_dump()
            return handler(parsed)

        return cls(
            name=tool_name,
            description=tool_description,
            parameters=model.model_json_schema(),
            handler=_handler,
            kind=kind,
        )


class ToolRegistry:
    """Named tools with per-tool enable options."""

    def __init__(self, tools: Iterable[Tool | Callable[..., Any]] = ()) -> None:
        self._tools: dict[str, Tool] = {}
        for item in tools:
            self.register(item)

    def register(self, item: Tool | Callable[..., Any]) -> Tool:
        if isinstance(item, Tool):
            tool_obj = item
        elif callable(item):
            tool_obj = Tool.from_callable(item)
        else:
            raise TypeError(f"Unsupported tool type: {type(item)}")

        if not tool_obj.name.strip():
            _raise_value_error("Tool name cannot be empty.")
        if tool_obj.name in self._tools:
            _raise_value_error(f"Duplicate tool name: {tool_obj.name}")
        self._tools[tool_obj.name] = tool_obj
        return tool_obj

    def unregister(self, name: str) -> Tool | None:
        return self._tools.pop(name, None)

    def set_option(self, name: str, option: ToolOption) -> Tool:
        tool_obj = self._tools.get(name)
        if tool_obj is None:
            _raise_value_error(f"Unknown tool name: {name}")
        updated = tool_obj.with_option(option)
        self._tools[name] = updated
        return updated

    def enabled_tools(self) -> list[Tool]:
        return [tool_obj for tool_obj in self._tools.values() if tool_obj.enabled]

    def schemas(self) -> list[dict[str, Any]]:
        return [tool_obj.schema() for tool_obj in self.enabled_tools()]

    def find(self, name: str) -> Tool | None:
        """Resolve a tool the model asked for.

        Names are compared normalized. An exact match wins, otherwise the first
        enabled tool whose normalized name contains the request (or is contained
        in it) is returned.
        """
        wanted = normalize_tool_name(name)
        if not wanted:
            return None
        candidates = self.enabled_tools()
        for tool_obj in candidates:
            if normalize_tool_name(tool_obj.name) == wanted:
                return tool_obj
        for tool_obj in candidates:
            normalized = normalize_tool_name(tool_obj.name)
            if wanted in normalized or normalized in wanted:
                return tool_obj
        return None

    def __len__(self) -> int:
        return len(self._tools)

    def __iter__(self) -> Iterator[Tool]:
        return iter(list(self._tools.values()))

    def __contains__(self, name: object) -> bool:
        return name in self._tools


def tool(
    func: Callable[..., Any] | None = None,
    *,
    name: str | None = None,
    description: str | None = None,
    kind: ToolKind = ToolKind.FUNCTION,
    option: ToolOption = ToolOption.ENABLED,
) -> Tool | Callable[..., Any]:
    """Decorator to convert a function into a Tool instance."""

    def _create_tool(f: Callable[..., Any]) -> Tool:
        return Tool.from_callable(f, name=name, description=description, kind=kind, option=option)

    if func is None:
        return _create_tool
    return _create_tool(func)
