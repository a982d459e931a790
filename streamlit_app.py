"""Streamlit UI for the multi-provider chat client."""
from __future__ import annotations

import time
from typing import Optional

import streamlit as st

from chatdesk.commands import dispatch
from chatdesk.conversation import Turn
from chatdesk.errors import ChatError
from chatdesk.generation import GenerationHandle
from chatdesk.rendering import render
from chatdesk.session import SessionManager, create_session

_STREAM_REFRESH_SECONDS = 0.05


def _rerun() -> None:
    """Trigger a Streamlit rerun compatible with newer and older versions."""
    if hasattr(st, "rerun"):
        st.rerun()
    else:  # pragma: no cover - support for older Streamlit releases
        st.experimental_rerun()


st.set_page_config(page_title="Chatdesk", page_icon="💬", layout="wide")


@st.cache_resource
def get_session() -> SessionManager:
    return create_session()


def _format_timestamp(ts: float) -> str:
    try:
        return time.strftime("%Y-%m-%d %H:%M", time.localtime(ts))
    except (OverflowError, OSError, ValueError):  # pragma: no cover - malformed timestamps
        return "Unknown"


def toggle_edit(turn_id: str, value: bool) -> None:
    st.session_state.editing[turn_id] = value


def render_model_picker(session: SessionManager) -> None:
    providers = session.gateway.available_providers()
    if not providers:
        st.info("No providers are configured.")
        return
    provider_ids = [client.provider_id for client in providers]
    active = session.active
    current_provider = active.provider_id if active.provider_id in provider_ids else provider_ids[0]
    provider_id = st.selectbox(
        "Provider",
        provider_ids,
        index=provider_ids.index(current_provider),
        format_func=lambda pid: session.gateway.client(pid).display_name,
        key="provider_selector",
    )
    try:
        models = session.list_models(provider_id)
    except ChatError as exc:
        st.warning(exc.message)
        models = []
    if not models:
        st.caption("No models available for this provider.")
        return
    names = [model.name for model in models]
    current_model = active.model_id if active.model_id in names else names[0]
    model_id = st.selectbox(
        "Model",
        names,
        index=names.index(current_model),
        format_func=lambda name: next((m.label for m in models if m.name == name), name),
        key="model_selector",
    )
    if (provider_id, model_id) != (active.provider_id, active.model_id):
        session.select_model(provider_id, model_id)


def render_sidebar(session: SessionManager) -> None:
    with st.sidebar:
        st.header("Model")
        render_model_picker(session)
        st.divider()
        st.header("Chats")
        if st.button("New Chat", use_container_width=True):
            dispatch(session, "new_chat")
            st.session_state.editing.clear()
            _rerun()
        active_id = session.active.id
        for conversation in session.conversations:
            label = conversation.title
            if conversation.id == active_id:
                label = f"▶ {label}"
            col_open, col_delete = st.columns([5, 1])
            with col_open:
                if st.button(label, key=f"open_{conversation.id}", use_container_width=True):
                    session.switch_to(conversation.id)
                    st.session_state.editing.clear()
                    _rerun()
                st.caption(_format_timestamp(conversation.updated_at))
            with col_delete:
                if st.button("🗑", key=f"delete_{conversation.id}"):
                    dispatch(session, "delete_chat", conversation_id=conversation.id)
                    _rerun()
        st.divider()
        if st.button("Generate title", use_container_width=True):
            session.generate_title()
            _rerun()
        st.download_button(
            "Export",
            data=session.export(),
            file_name=f"{session.active.id}.md",
            mime="text/markdown",
            use_container_width=True,
        )
        if st.button("Clear all history", use_container_width=True, type="secondary"):
            dispatch(session, "clear_history")
            st.session_state.editing.clear()
            _rerun()


def render_content(text: str, *, streaming: bool = False) -> None:
    for block in render(text):
        if block.kind == "think":
            label = "Thinking..." if not block.closed else "Thought process"
            with st.expander(label, expanded=streaming and not block.closed):
                st.markdown(block.content)
        else:
            st.markdown(block.content)


def render_assistant_controls(session: SessionManager, turn: Turn, busy: bool) -> None:
    total = len(turn.responses)
    col_prev, col_page, col_next, col_regen = st.columns([1, 2, 1, 3])
    if total > 1:
        with col_prev:
            if st.button("‹", key=f"prev_{turn.id}", disabled=busy or turn.current_index == 0):
                session.select_response(turn.id, turn.current_index - 1)
                _rerun()
        with col_page:
            st.caption(f"{turn.current_index + 1} / {total}")
        with col_next:
            if st.button("›", key=f"next_{turn.id}", disabled=busy or turn.current_index >= total - 1):
                session.select_response(turn.id, turn.current_index + 1)
                _rerun()
    with col_regen:
        if st.button("Regenerate", key=f"regen_{turn.id}", disabled=busy):
            try:
                session.regenerate(turn.id)
            except ChatError as exc:
                st.warning(exc.message)
                return
            _rerun()


def render_user_turn(session: SessionManager, turn: Turn, busy: bool) -> None:
    if st.session_state.editing.get(turn.id, False):
        new_content = st.text_area("Edit message", turn.text, key=f"edit_area_{turn.id}", height=150)
        col_save, col_cancel = st.columns(2)
        with col_save:
            if st.button("Save & resend", key=f"save_{turn.id}"):
                toggle_edit(turn.id, False)
                if new_content.strip():
                    try:
                        session.edit_and_resend(turn.id, new_content)
                    except ChatError as exc:
                        st.warning(exc.message)
                        return
                _rerun()
        with col_cancel:
            if st.button("Cancel", key=f"cancel_{turn.id}"):
                toggle_edit(turn.id, False)
                _rerun()
        return
    st.markdown(turn.text)
    if st.button("Edit", key=f"edit_{turn.id}", disabled=busy):
        toggle_edit(turn.id, True)
        _rerun()


def render_conversation(session: SessionManager) -> Optional[tuple[Turn, object]]:
    """Render every turn; return the streaming turn and its placeholder, if any."""

    conversation = session.active
    busy = session.is_generating()
    streaming: Optional[tuple[Turn, object]] = None
    for turn in list(conversation.turns):
        with st.chat_message(turn.role.value):
            if turn.is_user:
                render_user_turn(session, turn, busy)
                continue
            if turn.is_generating:
                placeholder = st.empty()
                streaming = (turn, placeholder)
                continue
            render_content(turn.text)
            render_assistant_controls(session, turn, busy)
    return streaming


def stream_into(handle: GenerationHandle, turn: Turn, placeholder) -> None:
    """Repaint ``placeholder`` with the turn's text until the stream ends."""

    while not handle.join(_STREAM_REFRESH_SECONDS):
        with placeholder.container():
            render_content(turn.text + "▌", streaming=True)
    with placeholder.container():
        render_content(turn.text)


def main() -> None:
    session = get_session()
    if "editing" not in st.session_state:
        st.session_state.editing = {}
    render_sidebar(session)
    st.title(session.active.title)
    st.caption("Chat with local or hosted models. Regenerate replies, page through versions, or edit a message to branch.")

    if session.is_generating() and st.button("Stop generating", type="primary"):
        dispatch(session, "stop")
        _rerun()

    streaming = render_conversation(session)
    handle = session.controller.active_handle(session.active)
    if streaming is not None and handle is not None:
        turn, placeholder = streaming
        stream_into(handle, turn, placeholder)
        _rerun()

    if prompt := st.chat_input("Send a message...", disabled=session.is_generating()):
        session.send(prompt)
        _rerun()


if __name__ == "__main__":
    main()
