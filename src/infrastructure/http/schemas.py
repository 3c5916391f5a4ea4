"""Pydantic wire schemas for the Todo Service REST API."""

from datetime import date, datetime

from pydantic import BaseModel, ConfigDict, Field

from domain.entities.todo import Todo


class TodoPayload(BaseModel):
    """A todo row as returned by the Todo Service (camelCase JSON)."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: int | None = None
    text: str
    assigned_date: date = Field(..., alias="assignedDate")
    instance_date: date | None = Field(None, alias="instanceDate")
    position: int = 0
    recurring_todo_id: int | None = Field(None, alias="recurringTodoId")
    is_completed: bool = Field(False, alias="isCompleted")
    completed_at: datetime | None = Field(None, alias="completedAt")
    is_rolled_over: bool = Field(False, alias="isRolledOver")
    is_virtual: bool = Field(False, alias="isVirtual")

    def to_entity(self) -> Todo:
        return Todo(
            id=self.id,
            text=self.text,
            assigned_date=self.assigned_date,
            instance_date=self.instance_date,
            position=self.position,
            recurring_todo_id=self.recurring_todo_id,
            is_completed=self.is_completed,
            completed_at=self.completed_at,
            is_rolled_over=self.is_rolled_over,
            is_virtual=self.is_virtual,
        )


class CreateTodoRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    text: str = Field(..., min_length=1)
    assigned_date: date = Field(..., alias="assignedDate")


class UpdateTextRequest(BaseModel):
    text: str = Field(..., min_length=1)


class UpdatePositionRequest(BaseModel):
    position: int = Field(..., ge=0)


class UpdateAssignedDateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    to_date: date = Field(..., alias="toDate")


class VirtualTodoRequest(BaseModel):
    """Recurrence reference identifying a virtual occurrence."""

    model_config = ConfigDict(populate_by_name=True)

    recurring_todo_id: int = Field(..., alias="recurringTodoId")
    instance_date: date = Field(..., alias="instanceDate")


class MessageResponse(BaseModel):
    """Body of deletes and error responses."""

    message: str = ""
