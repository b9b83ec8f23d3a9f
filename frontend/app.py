"""
Streamlit frontend — bulk receipt renaming.

Files are validated and tracked in a session-scoped ResultStore, sent one by
one through the FastAPI relay, and offered back under their suggested names.

Entry point: streamlit run frontend/app.py
"""

import asyncio
import functools
import os
import sys

import pandas as pd
import streamlit as st

sys.path.insert(0, os.path.join(os.path.dirname(os.path.abspath(__file__)), ".."))

from backend import config  # noqa: E402
from backend.models import FileHandle, FileStatus, TrackedFile  # noqa: E402
from backend.upload.batch import BatchOrchestrator  # noqa: E402
from backend.upload.client import relay_url, submit_file  # noqa: E402
from backend.upload.download import archive_completed, download_name  # noqa: E402
from backend.upload.store import ResultStore  # noqa: E402

st.set_page_config(
    page_title="領収書ファイル一括リネーム",
    page_icon="🤖",
    layout="wide",
)

# ── Session State ────────────────────────────────────────────────────────────
if "store" not in st.session_state:
    st.session_state.store = ResultStore()
if "uploader_key" not in st.session_state:
    st.session_state.uploader_key = 0
if "user_id" not in st.session_state:
    st.session_state.user_id = config.DEFAULT_USER_ID

store: ResultStore = st.session_state.store

_STATUS_LABELS = {
    FileStatus.PENDING: "🕒 待機中",
    FileStatus.PROCESSING: "⏳ 処理中",
    FileStatus.COMPLETED: "✅ 完了",
    FileStatus.ERROR: "⚠️ エラー",
}


# ── Helpers ──────────────────────────────────────────────────────────────────

def _results_frame(records: list[TrackedFile]) -> pd.DataFrame:
    rows = []
    for r in records:
        rows.append({
            "ファイル名": r.name,
            "状態": _STATUS_LABELS[r.status],
            "進捗": r.progress,
            "新しいファイル名": r.result.renamed_filename if r.result else "",
            "会社名": r.result.company if r.result else "",
            "日付": r.result.date if r.result else "",
            "金額": r.result.amount if r.result else None,
            "内容": r.result.description if r.result else "",
            "エラー": r.error or "",
        })
    return pd.DataFrame(rows)


def render_table(target, records: list[TrackedFile]):
    if not records:
        target.info("ファイルが選択されていません。")
        return
    target.dataframe(
        _results_frame(records),
        use_container_width=True,
        hide_index=True,
        column_config={
            "進捗": st.column_config.ProgressColumn("進捗", min_value=0, max_value=100),
        },
    )


def render_stats():
    stats = store.stats()
    col1, col2, col3, col4 = st.columns(4)
    col1.metric("総ファイル数", stats.total)
    col2.metric("処理済み", stats.processed)
    col3.metric("完了", stats.completed)
    col4.metric("エラー", stats.errors)


def run_batch(table_slot):
    submit = functools.partial(
        submit_file,
        user_id=st.session_state.user_id,
        url=relay_url(config.BACKEND_URL),
    )
    orchestrator = BatchOrchestrator(
        store,
        submit,
        on_update=lambda s: render_table(table_slot, s.records()),
    )
    with st.spinner("処理中..."):
        stats = asyncio.run(orchestrator.run())
    st.success(f"処理完了: {stats.completed} 件成功 / {stats.errors} 件エラー")


# ── Page ─────────────────────────────────────────────────────────────────────

def render_page():
    st.title("🤖 領収書ファイル一括リネームアプリ")
    st.caption("複数の領収書ファイルを一度にアップロードして、自動でリネーム・ダウンロードします")

    with st.sidebar:
        st.markdown("### ⚙️ 設定")
        st.text_input("User ID", key="user_id")
        st.caption(f"Relay: {relay_url(config.BACKEND_URL)}")

    uploaded = st.file_uploader(
        "PDF・画像ファイル (最大15MB)",
        type=["pdf", "jpg", "jpeg", "png", "gif", "webp", "svg"],
        accept_multiple_files=True,
        key=f"uploader_{st.session_state.uploader_key}",
    )

    col1, col2, col3 = st.columns(3)
    with col1:
        if st.button("ファイルを追加", disabled=not uploaded or store.processing):
            store.add_files(
                FileHandle(name=f.name, content_type=f.type or "", data=f.getvalue())
                for f in uploaded
            )
            st.session_state.uploader_key += 1
            st.rerun()
    with col2:
        start = st.button(
            "一括処理開始",
            type="primary",
            disabled=not store.pending_ids() or store.processing,
        )
    with col3:
        if st.button("すべてクリア", disabled=not len(store) or store.processing):
            store.clear()
            st.rerun()

    render_stats()

    st.markdown("---")
    table_slot = st.empty()
    render_table(table_slot, store.records())

    if start:
        run_batch(table_slot)

    render_downloads()
    render_removals()


def render_downloads():
    completed = store.completed()
    if not completed:
        return

    st.markdown("### 📥 ダウンロード")
    st.download_button(
        f"すべてダウンロード ({len(completed)} 件, zip)",
        data=archive_completed(completed),
        file_name="renamed_receipts.zip",
        mime="application/zip",
    )
    for record in completed:
        st.download_button(
            f"{record.name} → {download_name(record)}",
            data=record.file.data,
            file_name=download_name(record),
            mime=record.file.content_type or "application/octet-stream",
            key=f"dl_{record.id}",
        )


def render_removals():
    records = store.records()
    if not records or store.processing:
        return
    with st.expander("ファイルを削除"):
        for record in records:
            if st.button(f"✕ {record.name}", key=f"rm_{record.id}"):
                store.remove(record.id)
                st.rerun()


render_page()
