"""
Application stylesheet for light and dark mode theming.
"""


def get_application_stylesheet(is_dark: bool) -> str:
    """Return a single QSS stylesheet for the whole application.

    Applied once on the QApplication so the chat view and the status bar
    inherit the theme automatically.
    """
    accent_blue = "#7AA2FF" if is_dark else "#4A67AD"
    danger_red = "#E57373" if is_dark else "#C62828"
    danger_red_subtle = "rgba(229, 115, 115, 0.1)" if is_dark else "rgba(198, 40, 40, 0.1)"
    bg_window = "#1A1A1E" if is_dark else "#F8F9FA"
    bg_widget = "#252529" if is_dark else "#FFFFFF"
    bubble_user = "#2C2C30" if is_dark else "#EEF2FA"
    text_main = "#E1E1E6" if is_dark else "#333333"
    text_sec = "#8E8E93" if is_dark else "#636366"
    border = "#2C2C2C" if is_dark else "#E0E0E0"
    input_bg = "#252529" if is_dark else "#FFFFFF"
    disabled_bg = "#3A3A3C" if is_dark else "#E5E5EA"
    disabled_text = "#636366" if is_dark else "#8E8E93"
    scrollbar_handle = "#4D4D4D" if is_dark else "#C1C1C1"

    return f"""
        /* ========== Global Defaults ========== */
        QWidget {{
            background-color: {bg_window};
            color: {text_main};
            font-size: 13px;
        }}

        QLabel {{
            background-color: transparent;
        }}

        QStatusBar {{
            background-color: {bg_window};
            color: {text_sec};
            padding: 0px;
        }}

        /* ========== Header ========== */
        QLabel#chatbot_name_heading {{
            color: {text_main};
        }}
        QLabel#chatbot_model_name {{
            color: {text_sec};
            font-size: 11px;
        }}

        /* ========== Chat Bubbles ========== */
        QFrame#chat_bubble_user {{
            background-color: {bubble_user};
            border: 1px solid {border};
            border-radius: 8px;
        }}
        QFrame#chat_bubble_assistant {{
            background-color: {bg_widget};
            border: 1px solid {border};
            border-radius: 8px;
        }}
        QLabel#chat_role_label {{
            color: {text_sec};
            font-size: 11px;
        }}
        QLabel#chat_loading_label {{
            color: {text_sec};
            font-size: 16px;
            font-weight: 600;
        }}
        QLabel#chat_error_label {{
            color: {danger_red};
            background-color: {danger_red_subtle};
            border-radius: 4px;
            padding: 4px 6px;
        }}
        QTextBrowser#chat_content {{
            background: transparent;
            border: none;
        }}
        QPushButton#chat_copy_btn {{
            color: {text_sec};
            background: transparent;
            border: none;
            font-size: 11px;
        }}
        QPushButton#chat_copy_btn:hover {{
            color: {accent_blue};
        }}
        QPushButton#chat_copy_all_btn {{
            background-color: {bg_widget};
            border: 1px solid {border};
            border-radius: 6px;
            padding: 4px 10px;
        }}

        /* ========== Input ========== */
        QTextEdit#chat_input {{
            background-color: {input_bg};
            color: {text_main};
            border: 1px solid {border};
            border-radius: 6px;
            padding: 2px 6px;
            selection-background-color: {accent_blue};
            selection-color: white;
        }}
        QTextEdit#chat_input:focus {{
            border-color: {accent_blue};
        }}
        QTextEdit#chat_input:disabled {{
            background-color: {disabled_bg};
            color: {disabled_text};
        }}

        /* ========== Scrollbars ========== */
        QScrollArea#chat_history {{
            border: none;
        }}
        QScrollBar:vertical {{
            border: none;
            background: transparent;
            width: 8px;
            margin: 0px;
        }}
        QScrollBar::handle:vertical {{
            background: {scrollbar_handle};
            min-height: 20px;
            border-radius: 4px;
        }}
        QScrollBar::handle:vertical:hover {{
            background: {text_sec};
        }}
        QScrollBar::add-line:vertical, QScrollBar::sub-line:vertical {{
            height: 0px;
        }}
        QScrollBar::add-page:vertical, QScrollBar::sub-page:vertical {{
            background: transparent;
        }}
    """
