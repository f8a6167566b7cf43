from typing import Dict, Any, Optional, List, Literal, Union
from pydantic import BaseModel, Field
from datetime import datetime, timezone
from enum import Enum


WORKFLOW_FINISH = "_workflow_finish"


class EventType(str, Enum):
    """WebSocket event types"""
    MARKDOWN = "markdown"
    COMPONENT = "component"
    ERROR = "error"
    CONNECTION = "connection"
    USER_MESSAGE = "user_message"
    CANCEL = "cancel"


class ComponentType(str, Enum):
    """UI component types"""
    PROGRESS = "progress"
    UI_INTERACTION = "ui_interaction"
    FORM_SUBMIT = "form_submit"
    TOOL_ACTIVITY = "tool_activity"


class BaseEvent(BaseModel):
    """Base event model for all WebSocket messages"""
    type: EventType
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    session_id: Optional[str] = None


class MarkdownEvent(BaseEvent):
    """Markdown content event for chat messages"""
    type: Literal[EventType.MARKDOWN] = EventType.MARKDOWN
    payload: str


class ProgressData(BaseModel):
    """Progress component data"""
    status: str
    detail: Optional[str] = None


class FormField(BaseModel):
    """Form field definition"""
    type: Literal["text", "select", "number", "date", "textarea", "checkbox"]
    key: str
    label: str
    required: bool = False
    placeholder: Optional[str] = None
    options: Optional[List[Dict[str, str]]] = None  # For select fields
    default_value: Optional[Any] = None


class FormData(BaseModel):
    """Form component data"""
    id: str
    title: str
    description: Optional[str] = None
    fields: List[FormField]
    submit_label: str = "Submit"
    cancel_label: str = "Cancel"


class ToolActivityData(BaseModel):
    """A tool call requested by the model, or its result"""
    phase: Literal["call", "result"]
    tool_call_id: str
    tool_name: str
    args: Optional[Dict[str, Any]] = None
    result: Any = None
    success: Optional[bool] = None


class ComponentPayload(BaseModel):
    """Component event payload"""
    component: ComponentType
    data: Union[ProgressData, FormData, ToolActivityData, Dict[str, Any]]


class ComponentEvent(BaseEvent):
    """Component event for UI interactions"""
    type: Literal[EventType.COMPONENT] = EventType.COMPONENT
    payload: ComponentPayload


class ErrorEvent(BaseEvent):
    """Error event"""
    type: Literal[EventType.ERROR] = EventType.ERROR
    payload: Dict[str, Any]
    error_code: Optional[str] = None


class ConnectionEvent(BaseEvent):
    """Connection status event"""
    type: Literal[EventType.CONNECTION] = EventType.CONNECTION
    status: Literal["connected", "disconnected", "reconnecting"]


class UserMessage(BaseEvent):
    """User message event"""
    type: Literal[EventType.USER_MESSAGE] = EventType.USER_MESSAGE
    content: str = Field(min_length=1)
    metadata: Optional[Dict[str, Any]] = None


class FormSubmitData(BaseModel):
    """Form submission data; for confirmation forms form_id is the tool call id"""
    form_id: str
    values: Dict[str, Any]

    @property
    def approved(self) -> Optional[bool]:
        action = self.values.get("action")
        if action == "approve":
            return True
        if action == "reject":
            return False
        return None
