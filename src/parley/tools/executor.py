"""Tool execution for Parley."""

from __future__ import annotations

import inspect
import json
from typing import Any, Protocol

from pydantic import ValidationError

from parley.core.errors import ErrorKind, ParleyError
from parley.tools.schema import Tool


class ToolExecutor(Protocol):
    """Runs one tool call. An empty dict means the tool produced nothing."""

    def execute(self, tool: Tool, arguments_text: str) -> dict[str, Any]: ...

    async def execute_async(self, tool: Tool, arguments_text: str) -> dict[str, Any]: ...


class RegistryToolExecutor:
    """Call a tool's handler with its JSON arguments decoded as keywords."""

    def execute(self, tool: Tool, arguments_text: str) -> dict[str, Any]:
        if not tool.runnable:
            return {}
        arguments = self._normalize_tool_args(tool.name, arguments_text)
        try:
            result = tool.run(**arguments)
            if inspect.isawaitable(result):
                if inspect.iscoroutine(result):
                    result.close()
                raise ParleyError(
                    ErrorKind.INVALID_INPUT,
                    f"Tool '{tool.name}' is async; use execute_async() instead of execute().",
                )
        except ParleyError:
            raise
        except ValidationError as exc:
            raise self._validation_error(tool.name, exc) from exc
        except Exception as exc:
            raise ParleyError(ErrorKind.TOOL, str(exc) or repr(exc), cause=exc) from exc
        return self._normalize_result(result)

    async def execute_async(self, tool: Tool, arguments_text: str) -> dict[str, Any]:
        if not tool.runnable:
            return {}
        arguments = self._normalize_tool_args(tool.name, arguments_text)
        try:
            result = tool.run(**arguments)
            if inspect.isawaitable(result):
                result = await result
        except ParleyError:
            raise
        except ValidationError as exc:
            raise self._validation_error(tool.name, exc) from exc
        except Exception as exc:
            raise ParleyError(ErrorKind.TOOL, str(exc) or repr(exc), cause=exc) from exc
        return self._normalize_result(result)

    @staticmethod
    def _validation_error(tool_name: str, exc: ValidationError) -> ParleyError:
        return ParleyError(
            ErrorKind.INVALID_INPUT,
            f"Tool '{tool_name}' argument validation failed.",
            cause=exc,
            details={"errors": exc.errors(include_url=False)},
        )

    @staticmethod
    def _normalize_result(result: Any) -> dict[str, Any]:
        if result is None:
            return {}
        if isinstance(result, dict):
            return result
        return {"result": result}

    @staticmethod
    def _normalize_tool_args(tool_name: str, arguments_text: str) -> dict[str, Any]:
        if not arguments_text or not arguments_text.strip():
            return {}
        try:
            tool_args = json.loads(arguments_text)
        except json.JSONDecodeError as exc:
            raise ParleyError(
                ErrorKind.INVALID_INPUT,
                f"Tool '{tool_name}' arguments are not valid JSON.",
                cause=exc,
            ) from exc
        if isinstance(tool_args, dict):
            return tool_args
        raise ParleyError(
            ErrorKind.INVALID_INPUT,
            f"Tool '{tool_name}' arguments must be an object.",
        )
