from __future__ import annotations

from typing import Any


def make_tool_result(
    *,
    kind: str,
    text: str,
    success: bool,
    error: str | None = None,
    data: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Build a normalized tool result envelope.

    ``text`` is what the model sees as the tool message content; the other
    fields are for logging and for ``tool_result`` stream events.
    """
    return {
        "kind": kind,
        "text": text,
        "success": bool(success),
        "error": error if not success else None,
        "data": data or {},
    }


def make_tool_success(
    *,
    kind: str,
    text: str,
    data: dict[str, Any] | None = None,
) -> dict[str, Any]:
    return make_tool_result(kind=kind, text=text, success=True, data=data)


def make_tool_error(
    *,
    kind: str,
    error: str,
    text: str | None = None,
    data: dict[str, Any] | None = None,
) -> dict[str, Any]:
    rendered = text if text is not None else f"Error: {error}"
    return make_tool_result(
        kind=kind,
        text=rendered,
        success=False,
        error=error,
        data=data,
    )


def normalize_tool_result(tool_name: str, result: Any) -> dict[str, Any]:
    """Normalize arbitrary executor output into the result envelope."""
    if isinstance(result, dict):
        if isinstance(result.get("text"), str) and isinstance(result.get("success"), bool):
            normalized = dict(result)
            normalized.setdefault("kind", tool_name)
            normalized.setdefault("error", None)
            normalized.setdefault("data", {})
            return normalized
        if isinstance(result.get("text"), str):
            error = result.get("error")
            return make_tool_result(
                kind=tool_name,
                text=result["text"],
                success=bool(result.get("success", not error)),
                error=str(error) if error else None,
                data=result.get("data") if isinstance(result.get("data"), dict) else {},
            )

    if isinstance(result, list):
        return make_tool_success(
            kind=tool_name,
            text=" ".join(
                str(block.get("text", ""))
                for block in result
                if isinstance(block, dict) and block.get("type") == "text"
            ),
        )

    return make_tool_success(kind=tool_name, text=str(result))
