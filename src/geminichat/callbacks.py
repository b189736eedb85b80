"""Dash callbacks wiring the page to the ChatController.

Every callback reaches the controller through ``app.runner`` so that state is
only ever read and mutated on the event loop thread. The transcript is
re-rendered by a polling callback whenever the controller's revision moves,
which is how streamed fragments and late titles reach the page.
"""

import logging

from dash import ALL, Input, Output, State, callback_context, no_update

from .layout import APP_TITLE
from .models import USER_ROLE, AppSettings

logger = logging.getLogger(__name__)


def clicked_id(ctx):
    """Returns the pattern id ``"id"`` of the clicked component, if any.

    Re-rendering a pattern-matched list fires its callbacks with
    ``n_clicks=0``; those are not clicks.
    """
    triggered = ctx.triggered_id
    if not isinstance(triggered, dict):
        return None
    for item in ctx.inputs_list[0]:
        if item.get("id") == triggered and item.get("value"):
            return triggered["id"]
    return None


def model_label(app, model_id: str) -> str:
    return dict(app.llm.models()).get(model_id, model_id)


def take_snapshot(controller, rendered_revision=None):
    """Copies everything the page renders. Runs on the loop thread.

    Returns ``None`` when nothing changed since ``rendered_revision``.
    """
    if controller.revision == rendered_revision:
        return None
    active = controller.active_session()
    return {
        "revision": controller.revision,
        "active_id": controller.active_session_id,
        "active": active.model_copy(deep=True) if active else None,
        "sessions": [s.model_copy() for s in controller.sessions.sorted_by_activity()],
        "settings": controller.settings.get(),
        "streaming": controller.is_streaming(),
    }


def register_callbacks(app):
    runner = app.runner
    controller = app.controller
    layout = app.layout_builder

    @app.callback(
        [
            Output("input_textarea", "value"),
            Output("command_counter", "data", allow_duplicate=True),
        ],
        [Input("submit_button", "n_clicks")],
        [State("input_textarea", "value"), State("command_counter", "data")],
        prevent_initial_call=True,
    )
    def send_message(n_clicks, user_input, counter):
        if not n_clicks or not user_input or not user_input.strip():
            return no_update, no_update
        try:
            # One loop call, so concurrent clicks cannot both start a stream.
            if runner.call(controller.start_send, user_input) is None:
                return no_update, no_update
            return "", (counter or 0) + 1
        except Exception:
            logger.exception("Failed to send message")
            return no_update, no_update

    @app.callback(
        [
            Output("messages_container", "children"),
            Output("conversations_list", "children"),
            Output("session_title", "children"),
            Output("status_indicator", "hidden"),
            Output("streaming_state", "data"),
            Output("rendered_revision", "data"),
        ],
        [
            Input("refresh_interval", "n_intervals"),
            Input("command_counter", "data"),
        ],
        [State("rendered_revision", "data")],
    )
    def refresh(n_intervals, counter, rendered_revision):
        try:
            snapshot = runner.call(take_snapshot, controller, rendered_revision)
        except Exception:
            logger.exception("Failed to read application state")
            return (no_update,) * 6
        if snapshot is None:
            return (no_update,) * 6

        active = snapshot["active"]
        if active is None or not active.messages:
            settings = snapshot["settings"]
            messages = layout.build_welcome(settings, model_label(app, settings.model))
        else:
            messages = layout.build_messages(active.messages)

        waiting_for_first_fragment = (
            snapshot["streaming"]
            and active is not None
            and bool(active.messages)
            and active.messages[-1].role == USER_ROLE
        )
        return (
            messages,
            layout.build_session_list(snapshot["sessions"], snapshot["active_id"]),
            active.title if active else APP_TITLE,
            not waiting_for_first_fragment,
            snapshot["streaming"],
            snapshot["revision"],
        )

    @app.callback(
        Output("submit_button", "disabled"),
        [Input("input_textarea", "value"), Input("streaming_state", "data")],
    )
    def toggle_submit(user_input, streaming):
        return bool(streaming) or not (user_input or "").strip()

    @app.callback(
        Output("command_counter", "data", allow_duplicate=True),
        [Input("new_conversation_button", "n_clicks")],
        [State("command_counter", "data")],
        prevent_initial_call=True,
    )
    def create_new_chat(n_clicks, counter):
        if not n_clicks:
            return no_update
        try:
            runner.call(controller.new_chat)
        except Exception:
            logger.exception("Failed to create a new chat")
            return no_update
        return (counter or 0) + 1

    @app.callback(
        Output("command_counter", "data", allow_duplicate=True),
        [Input({"type": "session-item", "id": ALL}, "n_clicks")],
        [State("command_counter", "data")],
        prevent_initial_call=True,
    )
    def select_session(n_clicks, counter):
        session_id = clicked_id(callback_context)
        if session_id is None:
            return no_update
        try:
            runner.call(controller.select, session_id)
        except Exception:
            logger.exception("Failed to select session %s", session_id)
            return no_update
        return (counter or 0) + 1

    @app.callback(
        Output("command_counter", "data", allow_duplicate=True),
        [Input({"type": "session-delete", "id": ALL}, "n_clicks")],
        [State("command_counter", "data")],
        prevent_initial_call=True,
    )
    def delete_session(n_clicks, counter):
        session_id = clicked_id(callback_context)
        if session_id is None:
            return no_update
        try:
            runner.call(controller.delete, session_id)
        except Exception:
            logger.exception("Failed to delete session %s", session_id)
            return no_update
        return (counter or 0) + 1

    @app.callback(
        Output("sidebar", "hidden"),
        [Input("sidebar_toggle", "n_clicks")],
        [State("sidebar", "hidden")],
        prevent_initial_call=True,
    )
    def toggle_sidebar(toggle_clicks, is_hidden):
        if not toggle_clicks:
            return no_update
        return not is_hidden

    @app.callback(
        [
            Output("settings_modal", "is_open"),
            Output("settings_model", "options"),
            Output("settings_model", "value"),
            Output("settings_system_instruction", "value"),
            Output("command_counter", "data", allow_duplicate=True),
        ],
        [
            Input("settings_button", "n_clicks"),
            Input("settings_cancel", "n_clicks"),
            Input("settings_save", "n_clicks"),
        ],
        [
            State("settings_model", "value"),
            State("settings_system_instruction", "value"),
            State("command_counter", "data"),
        ],
        prevent_initial_call=True,
    )
    def handle_settings(open_clicks, cancel_clicks, save_clicks, model, instruction, counter):
        trigger = callback_context.triggered_id
        try:
            if trigger == "settings_button" and open_clicks:
                # The editor always starts from the saved settings.
                settings = runner.call(controller.settings.get)
                models = list(app.llm.models())
                if settings.model not in dict(models):
                    models.append((settings.model, settings.model))
                return (
                    True,
                    layout.build_model_options(models),
                    settings.model,
                    settings.system_instruction,
                    no_update,
                )
            if trigger == "settings_save" and save_clicks:
                settings = AppSettings(
                    model=model or "", system_instruction=instruction or ""
                )
                runner.call(controller.save_settings, settings)
                return False, no_update, no_update, no_update, (counter or 0) + 1
            if trigger == "settings_cancel" and cancel_clicks:
                return False, no_update, no_update, no_update, no_update
        except Exception:
            logger.exception("Failed to apply settings")
        return no_update, no_update, no_update, no_update, no_update

    _register_clientside_callbacks(app)


def _register_clientside_callbacks(app):
    app.clientside_callback(
        """
        function(revision) {
            const textarea = document.getElementById('input_textarea');
            const submitButton = document.getElementById('submit_button');

            if (textarea && submitButton && !window.enterListenerSetup) {
                window.enterListenerSetup = true;
                textarea.addEventListener('keydown', function(e) {
                    // Shift+Enter keeps the default newline
                    if (e.key === 'Enter' && !e.shiftKey) {
                        e.preventDefault();
                        if (textarea.value.trim() && !submitButton.disabled) {
                            submitButton.click();
                        }
                    }
                });
            }
            return window.dash_clientside.no_update;
        }
        """,
        Output("submit_button", "n_clicks", allow_duplicate=True),
        [Input("rendered_revision", "data")],
        prevent_initial_call=True,
    )

    # Auto-scroll to bottom
    app.clientside_callback(
        """
        function(messages_content) {
            setTimeout(function() {
                const container = document.getElementById('messages_container');
                if (container && container.parentElement) {
                    container.parentElement.scrollTop = container.parentElement.scrollHeight;
                }
            }, 100);
            return window.dash_clientside.no_update;
        }
        """,
        Output("messages_container", "data-scroll-trigger", allow_duplicate=True),
        [Input("messages_container", "children")],
        prevent_initial_call=True,
    )

    # Auto-grow the input up to its max height
    app.clientside_callback(
        """
        function(value) {
            const textarea = document.getElementById('input_textarea');
            if (textarea) {
                textarea.style.height = 'auto';
                textarea.style.height = Math.min(textarea.scrollHeight, 200) + 'px';
            }
            return window.dash_clientside.no_update;
        }
        """,
        Output("input_textarea", "style", allow_duplicate=True),
        [Input("input_textarea", "value")],
        prevent_initial_call=True,
    )
