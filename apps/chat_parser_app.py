import streamlit as st

from chat_parser.api import default_pipeline_factory
from chat_parser.config import load_settings
from chat_parser.db import get_database
from chat_parser.exceptions import ChatParserError
from chat_parser.ingest import find_chat_logs, import_chat_logs
from chat_parser.repository import (
    SORT_OPTIONS,
    filter_messages,
    get_messages,
    get_senders,
    insert_messages,
)


settings = load_settings()
db = get_database()


@st.cache_resource
def get_pipeline():
    return default_pipeline_factory(settings)


st.set_page_config(page_title="Chat Parser", page_icon="💬")

st.title("💬 Chat Parser")
st.write(
    "Upload a plain-text chat log and let the model extract sender, "
    "timestamp and message for every line. Results are stored in Postgres."
)

if not settings.openai_api_key:
    st.warning("`OPENAI_API_KEY` is not set. Uploads are disabled.")
if not db.configured:
    st.error("`DATABASE_URL` (or `PG_HOST`) is not set.")
    st.stop()


# -----------------------------
# Upload
# -----------------------------
st.subheader("📤 Upload chat log")

uploaded = st.file_uploader("Chat log (.txt)", type=["txt"])

if uploaded is not None and st.button("Parse and store", disabled=not settings.openai_api_key):
    raw = uploaded.getvalue()
    content = raw.decode("utf-8", errors="replace")

    if len(raw) > settings.max_file_bytes:
        st.error(f"File too large. Maximum size is {settings.max_file_bytes} bytes")
    elif not content.strip():
        st.error("File is empty")
    else:
        with st.spinner("Extracting messages..."):
            try:
                result = get_pipeline().extract(content)
                stored = insert_messages(db, result.messages)
            except ChatParserError as e:
                st.error(str(e))
            else:
                st.success(f"Successfully processed {len(stored)} messages")
                if result.fallback:
                    st.info("No model answered; messages were parsed line by line.")


# -----------------------------
# Sidebar: batch import from DATA_DIR
# -----------------------------
st.sidebar.header("Batch import")
txt_files = find_chat_logs(settings.data_dir)
if not txt_files:
    st.sidebar.info(f"No `.txt` files found in `{settings.data_dir}`.")
else:
    st.sidebar.write(f"{len(txt_files)} files in `{settings.data_dir}`")
    if st.sidebar.button("Import all", disabled=not settings.openai_api_key):
        with st.spinner("Parsing chat logs..."):
            summary = import_chat_logs(settings, db, get_pipeline())
        st.sidebar.success(f"Imported {summary['messages']} messages.")
        for name, error in summary["failed"].items():
            st.sidebar.error(f"{name}: {error}")


# -----------------------------
# Browse messages
# -----------------------------
st.subheader("🗂️ Messages")

messages = get_messages(db)

col_search, col_sender, col_sort = st.columns(3)
search = col_search.text_input("Search", value="")
sender = col_sender.selectbox("Sender", [""] + get_senders(messages),
                              format_func=lambda s: s or "All senders")
sort_by = col_sort.selectbox("Sort by", SORT_OPTIONS)

shown = filter_messages(messages, search=search, sender=sender, sort_by=sort_by)
st.caption(f"Showing {len(shown)} of {len(messages)} messages")

for m in shown:
    with st.chat_message("user"):
        st.markdown(f"**{m.sender}** · `{m.timestamp}`")
        st.markdown(m.message or "_(empty)_")

if messages and not shown:
    st.info("No messages match your current filters.")
