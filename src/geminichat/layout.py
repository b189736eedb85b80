"""Layout builders for the Dash component tree."""

from abc import ABC, abstractmethod
from typing import List, Optional, Sequence, Tuple

import dash_bootstrap_components as dbc
from dash import dcc, html
from dash.development.base_component import Component as DashComponent

from .models import USER_ROLE, AppSettings, ChatSession, Message

# Component ids the callbacks depend on. Custom layouts must provide all of them.
REQUIRED_COMPONENT_IDS = (
    "sidebar",
    "sidebar_toggle",
    "conversations_list",
    "new_conversation_button",
    "session_title",
    "messages_container",
    "status_indicator",
    "input_textarea",
    "submit_button",
    "settings_button",
    "settings_modal",
    "settings_model",
    "settings_system_instruction",
    "settings_cancel",
    "settings_save",
    "refresh_interval",
    "rendered_revision",
    "command_counter",
    "streaming_state",
)

APP_TITLE = "Gemini Chat"


class Layout(ABC):
    """Interface for building the Dash component layout."""

    @abstractmethod
    def build_layout(self) -> DashComponent:
        """Constructs and returns the entire Dash component tree for the UI."""
        pass

    @abstractmethod
    def build_messages(self, messages: List[Message]) -> List[DashComponent]:
        """Converts a transcript into renderable components."""
        pass

    @abstractmethod
    def build_session_list(
        self, sessions: Sequence[ChatSession], active_id: Optional[str]
    ) -> List[DashComponent]:
        """Renders the session list; ``sessions`` is already in display order."""
        pass

    @abstractmethod
    def build_welcome(self, settings: AppSettings, model_label: str) -> DashComponent:
        """Renders the empty-transcript screen."""
        pass

    def get_external_stylesheets(self) -> List[str]:
        return []

    def get_external_scripts(self) -> List[str]:
        return []

    @staticmethod
    def build_model_options(models: Sequence[Tuple[str, str]]) -> List[dict]:
        return [{"label": label, "value": model_id} for model_id, label in models]


class Bootstrap(Layout):
    """The default layout, built with dash-bootstrap-components."""

    def __init__(self, refresh_interval_ms: int = 400):
        self.refresh_interval_ms = refresh_interval_ms

    def get_external_stylesheets(self) -> List[str]:
        return [dbc.themes.DARKLY, dbc.icons.BOOTSTRAP]

    def build_layout(self) -> DashComponent:
        return html.Div(
            className="d-flex vh-100",
            children=[
                dcc.Interval(id="refresh_interval", interval=self.refresh_interval_ms),
                dcc.Store(id="rendered_revision", data=-1),
                dcc.Store(id="command_counter", data=0),
                dcc.Store(id="streaming_state", data=False),
                self.build_sidebar(),
                html.Div(
                    className="d-flex flex-column flex-grow-1",
                    style={"minWidth": 0},
                    children=[
                        self.build_header(),
                        self.build_chat_area(),
                        self.build_input_area(),
                    ],
                ),
                self.build_settings_modal(),
            ],
        )

    def build_header(self) -> DashComponent:
        return html.Header(
            className="d-flex align-items-center justify-content-between p-2 border-bottom",
            children=[
                html.Div(
                    className="d-flex align-items-center gap-2",
                    style={"minWidth": 0},
                    children=[
                        dbc.Button(
                            html.I(className="bi bi-list"),
                            id="sidebar_toggle",
                            color="link",
                            n_clicks=0,
                        ),
                        html.H5(APP_TITLE, id="session_title", className="m-0 text-truncate"),
                    ],
                ),
                dbc.Button(
                    html.I(className="bi bi-gear"),
                    id="settings_button",
                    color="link",
                    title="System Instructions & Settings",
                    n_clicks=0,
                ),
            ],
        )

    def build_sidebar(self) -> DashComponent:
        return html.Div(
            id="sidebar",
            className="d-flex flex-column border-end p-3",
            style={"width": "18rem", "flexShrink": 0, "overflowY": "auto"},
            children=[
                dbc.Button(
                    [html.I(className="bi bi-plus-lg me-2"), "New Chat"],
                    id="new_conversation_button",
                    color="secondary",
                    className="w-100 mb-3",
                    n_clicks=0,
                ),
                html.Div(id="conversations_list"),
            ],
        )

    def build_chat_area(self) -> DashComponent:
        return html.Main(
            className="flex-grow-1 p-3",
            style={"overflowY": "auto"},
            children=[
                html.Div(
                    id="messages_container",
                    className="mx-auto",
                    style={"maxWidth": "56rem"},
                ),
                html.Div(
                    id="status_indicator",
                    hidden=True,
                    className="text-muted small mx-auto",
                    style={"maxWidth": "56rem"},
                    children=[dbc.Spinner(size="sm", spinnerClassName="me-2"), "Thinking..."],
                ),
            ],
        )

    def build_input_area(self) -> DashComponent:
        return html.Footer(
            className="p-3 border-top",
            children=[
                dbc.InputGroup(
                    className="mx-auto",
                    style={"maxWidth": "56rem"},
                    children=[
                        dbc.Textarea(
                            id="input_textarea",
                            placeholder="Message Gemini...",
                            rows=1,
                            style={"resize": "none", "maxHeight": "200px"},
                        ),
                        dbc.Button(
                            html.I(className="bi bi-send"),
                            id="submit_button",
                            color="primary",
                            disabled=True,
                            n_clicks=0,
                        ),
                    ],
                ),
                html.P(
                    "Gemini can make mistakes. Check important info.",
                    className="text-center text-muted small mt-2 mb-0",
                ),
            ],
        )

    def build_settings_modal(self) -> DashComponent:
        return dbc.Modal(
            id="settings_modal",
            is_open=False,
            size="lg",
            children=[
                dbc.ModalHeader(dbc.ModalTitle("Settings")),
                dbc.ModalBody(
                    [
                        dbc.Label("Model", html_for="settings_model"),
                        dbc.Select(id="settings_model", options=[], className="mb-4"),
                        dbc.Label(
                            "System Instructions",
                            html_for="settings_system_instruction",
                        ),
                        html.P(
                            "These instructions will be applied to every chat "
                            "session. Use this to define the persona, strict rules, "
                            "or formatting preferences for Gemini.",
                            className="small text-muted",
                        ),
                        dbc.Textarea(
                            id="settings_system_instruction",
                            rows=8,
                            className="font-monospace mb-4",
                            placeholder=(
                                "e.g., You are a senior Python engineer. Always "
                                "provide code snippets. Be concise."
                            ),
                        ),
                        dbc.Alert(
                            "Updating system instructions will apply to new messages "
                            "in current chats and all new chats. Existing context in "
                            "active chats remains until reset.",
                            color="warning",
                            className="mb-0",
                        ),
                    ]
                ),
                dbc.ModalFooter(
                    [
                        dbc.Button("Cancel", id="settings_cancel", color="secondary", n_clicks=0),
                        dbc.Button(
                            [html.I(className="bi bi-save me-2"), "Save Changes"],
                            id="settings_save",
                            color="primary",
                            n_clicks=0,
                        ),
                    ]
                ),
            ],
        )

    def build_messages(self, messages: List[Message]) -> List[DashComponent]:
        if not messages:
            return []
        return [self.build_message(msg) for msg in messages]

    def build_message(self, message: Message) -> DashComponent:
        is_user = message.role == USER_ROLE
        children = [dcc.Markdown(message.content, className="mb-0")]
        if not is_user:
            children.append(
                dcc.Clipboard(
                    content=message.content,
                    title="Copy",
                    className="small text-muted",
                    style={"cursor": "pointer"},
                )
            )
        return html.Div(
            className="d-flex mb-3 "
            + ("justify-content-end" if is_user else "justify-content-start"),
            children=html.Div(
                children,
                className="rounded-3 px-3 py-2 " + ("bg-secondary" if is_user else ""),
                style={"maxWidth": "85%"},
            ),
        )

    def build_session_list(
        self, sessions: Sequence[ChatSession], active_id: Optional[str]
    ) -> List[DashComponent]:
        if not sessions:
            return [html.Div("No saved chats.", className="text-center text-muted small mt-4")]
        return [
            html.Div(
                className="d-flex align-items-center rounded mb-1 "
                + ("bg-primary bg-opacity-25" if session.id == active_id else ""),
                children=[
                    html.Div(
                        [html.I(className="bi bi-chat-left me-2"), session.title],
                        id={"type": "session-item", "id": session.id},
                        n_clicks=0,
                        className="flex-grow-1 p-2 text-truncate",
                        style={"cursor": "pointer"},
                    ),
                    dbc.Button(
                        html.I(className="bi bi-trash"),
                        id={"type": "session-delete", "id": session.id},
                        color="link",
                        size="sm",
                        className="text-muted",
                        n_clicks=0,
                    ),
                ],
            )
            for session in sessions
        ]

    def build_welcome(self, settings: AppSettings, model_label: str) -> DashComponent:
        children = [
            html.I(className="bi bi-robot display-4 mb-3"),
            html.H2("How can I help you today?"),
            html.P(
                [
                    "I'm using the ",
                    html.Strong(model_label),
                    " model. Configure my behavior in settings.",
                ],
                className="text-muted",
            ),
        ]
        if settings.system_instruction:
            children.append(
                dbc.Card(
                    dbc.CardBody(
                        [
                            html.P(
                                "Active System Instruction",
                                className="text-uppercase small text-muted mb-2",
                            ),
                            html.P(
                                f'"{settings.system_instruction}"',
                                className="fst-italic small mb-0",
                            ),
                        ]
                    ),
                    className="mt-4 mx-auto",
                    style={"maxWidth": "32rem"},
                )
            )
        return html.Div(children, className="text-center mt-5")


def find_component_ids(component) -> set:
    """Collects every string component id in a Dash component tree."""
    found = set()
    stack = [component]
    while stack:
        node = stack.pop()
        if isinstance(node, (list, tuple)):
            stack.extend(node)
            continue
        if not isinstance(node, DashComponent):
            continue
        node_id = getattr(node, "id", None)
        if isinstance(node_id, str):
            found.add(node_id)
        stack.append(getattr(node, "children", None))
    return found
