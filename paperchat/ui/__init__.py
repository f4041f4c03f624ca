"""UI components for the PaperChat client."""

from .chat_view import ChatView
from .filter_dialog import FilterDialog
from .input_panel import InputPanel
from .main_window import MainWindow, ToastWidget
from .session_sidebar import SessionSidebar

__all__ = [
    "ChatView",
    "FilterDialog",
    "InputPanel",
    "MainWindow",
    "SessionSidebar",
    "ToastWidget",
]
