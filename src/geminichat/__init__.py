"""
The main entrypoint for the geminichat package.

This module contains the GeminiChat Dash application, which wires the
pluggable pieces (layout, LLM provider, durable storage) to the
ChatController that owns all conversation state.
"""

from typing import Optional

from dash import Dash

from . import layout, llm, storage
from .controller import ChatController
from .runner import LoopRunner

__all__ = ["GeminiChat", "ChatController", "LoopRunner"]


class GeminiChat(Dash):
    """
    A browser chat client for hosted LLMs with locally persisted history.

    The constructor uses concrete default implementations, making it easy
    to get started while remaining fully customizable.
    """

    def __init__(
        self,
        layout: Optional["layout.Layout"] = None,
        llm: Optional["llm.LLM"] = None,
        storage: Optional["storage.Storage"] = None,
        runner: Optional[LoopRunner] = None,
        **kwargs,
    ) -> None:
        """
        Initialize the application with configurable components.

        Parameters
        ----------
        layout : layout.Layout, optional
            Layout builder for constructing the Dash component tree.
            Defaults to layout.Bootstrap().
        llm : llm.LLM, optional
            Provider for chat handles and one-shot completions.
            Defaults to llm.Gemini(), which reads GEMINI_API_KEY.
        storage : storage.Storage, optional
            Durable storage for the session list and settings records.
            Defaults to storage.InMemory() (nothing survives a restart).
        runner : LoopRunner, optional
            The event loop thread all state changes run on. A new one is
            created and started when omitted.
        **kwargs
            Additional arguments passed to the Dash constructor.

        Raises
        ------
        ValueError
            If the layout is missing component ids the callbacks need.

        Examples
        --------
        >>> app = GeminiChat(llm=llm.Echo(), storage=storage.File("./chats"))
        """
        layout_module = globals()["layout"]
        llm_module = globals()["llm"]
        storage_module = globals()["storage"]

        self.layout_builder = layout if layout is not None else layout_module.Bootstrap()
        self.llm = llm if llm is not None else llm_module.Gemini()
        self.storage = storage if storage is not None else storage_module.InMemory()

        kwargs.setdefault("title", layout_module.APP_TITLE)
        if "external_stylesheets" not in kwargs:
            kwargs["external_stylesheets"] = []
        kwargs["external_stylesheets"].extend(
            self.layout_builder.get_external_stylesheets()
        )

        if "external_scripts" not in kwargs:
            kwargs["external_scripts"] = []
        kwargs["external_scripts"].extend(self.layout_builder.get_external_scripts())

        super().__init__(**kwargs)

        self.layout = self.layout_builder.build_layout()
        self._validate_layout()

        self.runner = runner if runner is not None else LoopRunner()
        self.runner.start()
        self.controller = ChatController(self.llm, self.storage)
        self._register_callbacks()

    def _validate_layout(self) -> None:
        found = layout.find_component_ids(self.layout)
        missing = [i for i in layout.REQUIRED_COMPONENT_IDS if i not in found]
        if missing:
            raise ValueError(
                f"Layout is missing required component ids: {', '.join(missing)}"
            )

    def _register_callbacks(self) -> None:
        """Registers all the callbacks that drive the controller."""
        from .callbacks import register_callbacks

        register_callbacks(self)