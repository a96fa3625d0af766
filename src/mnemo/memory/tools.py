"""Todo tools the assistant manages through function calling."""

from typing import Any

from ..tools.base import Tool, ToolResult
from .relational import RelationalStore

PRIORITIES = ["low", "normal", "high"]


class AddTodoTool(Tool):
    """Tool for adding a task to the todo list."""

    def __init__(self, store: RelationalStore) -> None:
        """Initialize with a relational store.

        Args:
            store: The RelationalStore holding todos.
        """
        self.store = store

    @property
    def name(self) -> str:
        return "add_todo"

    @property
    def description(self) -> str:
        return "Add a new task to the todo list."

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "task": {
                    "type": "string",
                    "description": "The task description",
                },
                "priority": {
                    "type": "string",
                    "enum": PRIORITIES,
                    "description": "Task priority level",
                },
            },
            "required": ["task"],
        }

    async def execute(self, **kwargs: Any) -> ToolResult:
        task = str(kwargs.get("task", "")).strip()
        if not task:
            return ToolResult(success=False, output="", error="'task' is required")

        todo = self.store.add_todo(task, priority=kwargs.get("priority") or "normal")
        return ToolResult(
            success=True,
            output=f"Added todo: {todo.task}",
            metadata={"id": todo.id},
        )


class GetTodosTool(Tool):
    """Tool for listing todos."""

    def __init__(self, store: RelationalStore) -> None:
        self.store = store

    @property
    def name(self) -> str:
        return "get_todos"

    @property
    def description(self) -> str:
        return "Get the pending todos from the todo list."

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "include_completed": {
                    "type": "boolean",
                    "description": "Whether to include completed todos",
                },
            },
            "required": [],
        }

    async def execute(self, **kwargs: Any) -> ToolResult:
        todos = self.store.get_todos(bool(kwargs.get("include_completed", False)))
        if not todos:
            return ToolResult(success=True, output="The todo list is empty.")

        lines = []
        for number, todo in enumerate(todos, start=1):
            mark = "x" if todo.completed else " "
            line = f"{number}. [{mark}] {todo.task} ({todo.priority})"
            if todo.due_date:
                line += f" due {todo.due_date[:10]}"
            lines.append(line)
        return ToolResult(success=True, output="\n".join(lines))


class _MatchTodoTool(Tool):
    """Shared lookup for tools that act on a todo by partial description."""

    verb = ""

    def __init__(self, store: RelationalStore) -> None:
        self.store = store

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "task_description": {
                    "type": "string",
                    "description": f"Description or partial match of the task to {self.verb}",
                },
            },
            "required": ["task_description"],
        }

    def _apply(self, todo_id: int) -> bool:
        raise NotImplementedError

    async def execute(self, **kwargs: Any) -> ToolResult:
        description = str(kwargs.get("task_description", "")).strip()
        if not description:
            return ToolResult(success=False, output="", error="'task_description' is required")

        todo = self.store.find_todo(description)
        if todo is None or not self._apply(todo.id):
            return ToolResult(
                success=False,
                output="",
                error=f"No todo found matching: {description}",
            )
        return ToolResult(success=True, output=f"{self.verb.capitalize()}d: {todo.task}")


class CompleteTodoTool(_MatchTodoTool):
    """Tool for marking a todo as done."""

    verb = "complete"

    @property
    def name(self) -> str:
        return "complete_todo"

    @property
    def description(self) -> str:
        return "Mark a todo as completed."

    def _apply(self, todo_id: int) -> bool:
        return self.store.complete_todo(todo_id)


class DeleteTodoTool(_MatchTodoTool):
    """Tool for removing a todo."""

    verb = "delete"

    @property
    def name(self) -> str:
        return "delete_todo"

    @property
    def description(self) -> str:
        return "Delete a todo from the list."

    def _apply(self, todo_id: int) -> bool:
        return self.store.delete_todo(todo_id)


def todo_tools(store: RelationalStore) -> list[Tool]:
    """All todo tools bound to ``store``."""
    return [
        AddTodoTool(store),
        GetTodosTool(store),
        CompleteTodoTool(store),
        DeleteTodoTool(store),
    ]
