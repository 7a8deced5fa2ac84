# Run from project root: streamlit run app/ui.py
# UI talks to backend API (POST /ingest-text, /upload, /web-ingest, /delete-doc, /chat).
# Chat history is kept here in session_state and sent with every question.

import os

import requests
import streamlit as st

# Backend config
API_BASE = os.environ.get("API_BASE", "http://localhost:8000")

st.title("Chat with your documents")

user_id = st.sidebar.text_input("User id", key="user_id")
if not user_id.strip():
    st.info("Enter a user id in the sidebar to upload documents and chat.")
    st.stop()

if "messages" not in st.session_state:
    st.session_state.messages = []
if "doc_ids" not in st.session_state:
    st.session_state.doc_ids = []


def _post(path: str, **kwargs) -> requests.Response | None:
    try:
        return requests.post(f"{API_BASE}{path}", **kwargs)
    except requests.RequestException as e:
        st.error(f"Request failed: {e}")
        return None


def _remember_doc(r: requests.Response, label: str) -> None:
    data = r.json()
    st.success(f"{data.get('message', 'Indexed')} ({data.get('chunksCreated', 0)} chunks)")
    st.session_state.doc_ids.append({"docId": data.get("docId"), "label": label})


# --- Ingestion ---
with st.expander("Add documents"):
    tab_file, tab_text, tab_url = st.tabs(["File", "Text", "Website"])

    with tab_file:
        uploaded = st.file_uploader(
            "Upload a PDF, text or image file",
            type=["pdf", "txt", "md", "png", "jpg", "jpeg", "gif", "webp"],
        )
        if st.button("Upload", key="upload_btn") and uploaded:
            r = _post(
                "/upload",
                files={"file": (uploaded.name, uploaded.getvalue())},
                data={"userId": user_id},
                timeout=120,
            )
            if r is not None:
                if r.ok:
                    _remember_doc(r, uploaded.name)
                else:
                    st.error(f"Upload failed: {r.status_code} — {r.text[:200]}")

    with tab_text:
        text = st.text_area("Paste text", key="ingest_text")
        if st.button("Index text", key="text_btn") and text.strip():
            r = _post("/ingest-text", json={"text": text, "userId": user_id}, timeout=60)
            if r is not None:
                if r.ok:
                    _remember_doc(r, text[:30] + "...")
                else:
                    st.error(f"Indexing failed: {r.status_code} — {r.text[:200]}")

    with tab_url:
        url = st.text_input("Website URL", key="ingest_url")
        if st.button("Crawl and index", key="url_btn") and url.strip():
            r = _post("/web-ingest", json={"url": url, "userId": user_id}, timeout=300)
            if r is not None:
                if r.ok:
                    _remember_doc(r, url)
                else:
                    st.error(f"Indexing failed: {r.status_code} — {r.text[:200]}")

# --- Documents added this session ---
if st.session_state.doc_ids:
    with st.sidebar.expander("Documents (this session)", expanded=True):
        for i, doc in enumerate(list(st.session_state.doc_ids)):
            st.caption(doc["label"])
            if st.button("Delete", key=f"delete_{doc['docId']}"):
                r = _post("/delete-doc", json={"userId": user_id, "docId": doc["docId"]}, timeout=30)
                if r is not None and r.ok:
                    st.session_state.doc_ids.pop(i)
                    st.rerun()
                elif r is not None:
                    st.error(f"Delete failed: {r.status_code} — {r.text[:200]}")

st.divider()
st.subheader("Chat")

if st.button("New chat", key="new_chat"):
    st.session_state.messages = []
    st.rerun()

for msg in st.session_state.messages:
    with st.chat_message(msg["role"]):
        st.markdown(msg["content"])

if prompt := st.chat_input("Ask a question about your documents"):
    with st.chat_message("user"):
        st.markdown(prompt)
    with st.chat_message("assistant"):
        placeholder = st.empty()
        placeholder.caption("Thinking...")
        r = _post(
            "/chat",
            json={"query": prompt, "userId": user_id, "history": st.session_state.messages},
            timeout=90,
        )
        if r is None:
            placeholder.empty()
        elif r.ok:
            data = r.json()
            placeholder.markdown(data.get("answer") or "No answer.")
            st.session_state.messages = data.get("messages", [])
            st.caption(f"Questions left this hour: {data.get('remaining', 0)}")
            context = data.get("context") or []
            if context:
                with st.expander(f"Context ({len(context)} chunks)"):
                    for c in context:
                        source = (c.get("metadata") or {}).get("source", "")
                        st.caption(source)
                        st.text(c.get("content", ""))
        else:
            error = (r.json() if r.headers.get("content-type", "").startswith("application/json") else {}).get("error")
            placeholder.error(error or f"Error: {r.status_code} — {r.text[:200]}")
