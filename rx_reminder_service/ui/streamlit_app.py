from datetime import datetime
from typing import Any, Dict, List, Optional

import pandas as pd
import requests
import streamlit as st
from dotenv import load_dotenv

load_dotenv()

st.set_page_config(page_title="Prescription Reminders", layout="wide")

# ---------------------------
# Config
# ---------------------------
DEFAULT_API_BASE = "http://127.0.0.1:8000"
API_BASE = st.sidebar.text_input("API Base URL", value=DEFAULT_API_BASE)

MED_COLUMNS = ["name", "dosage", "frequency", "duration", "notes"]
FREQUENCY_CHOICES = ["once daily", "twice daily", "thrice daily", "every 6 hours", "every 8 hours"]

# ---------------------------
# Helpers (API)
# ---------------------------
class ApiError(RuntimeError):
    def __init__(self, status_code: int, detail: Any):
        self.status_code = status_code
        self.detail = detail
        message = detail.get("message") if isinstance(detail, dict) else detail
        super().__init__(str(message))


def _check(r: requests.Response) -> Any:
    if r.status_code >= 400:
        try:
            detail = r.json().get("detail", r.text)
        except ValueError:
            detail = r.text
        raise ApiError(r.status_code, detail)
    return r.json()


def api_post(path: str, payload: Optional[Dict[str, Any]] = None, **kwargs) -> Any:
    return _check(requests.post(f"{API_BASE}{path}", json=payload, timeout=90, **kwargs))


def api_get(path: str, params: Optional[Dict[str, Any]] = None) -> Any:
    return _check(requests.get(f"{API_BASE}{path}", params=params or {}, timeout=20))


def api_patch(path: str, payload: Dict[str, Any]) -> Any:
    return _check(requests.patch(f"{API_BASE}{path}", json=payload, timeout=20))


def api_delete(path: str) -> Any:
    return _check(requests.delete(f"{API_BASE}{path}", timeout=20))


def meds_frame(meds: List[Dict[str, Any]]) -> pd.DataFrame:
    return pd.DataFrame(meds, columns=MED_COLUMNS)


def frame_to_meds(df: pd.DataFrame) -> List[Dict[str, Any]]:
    meds = []
    for row in df.fillna("").to_dict(orient="records"):
        if not str(row.get("name", "")).strip():
            continue
        meds.append({
            "name": str(row["name"]).strip(),
            "dosage": str(row.get("dosage") or "").strip() or "As directed",
            "frequency": str(row.get("frequency") or "once daily"),
            "duration": int(row.get("duration") or 7),
            "notes": str(row.get("notes") or "").strip() or None,
        })
    return meds


# ---------------------------
# Session state
# ---------------------------
if "scan" not in st.session_state:
    st.session_state.scan = None
if "sample_offered" not in st.session_state:
    st.session_state.sample_offered = False


def run_scan(call) -> None:
    try:
        st.session_state.scan = call()
        st.session_state.sample_offered = False
    except ApiError as e:
        if e.status_code == 402:
            st.session_state.sample_offered = True
        st.error(str(e))
    except requests.RequestException as e:
        st.error(f"Could not reach the API: {e}")


# ---------------------------
# Notifications (drained on every rerun)
# ---------------------------
with st.sidebar:
    st.subheader("Notifications")
    try:
        perm = api_get("/notifications/permission")
        choice = st.radio(
            "System notifications",
            ["default", "granted", "denied"],
            index=["default", "granted", "denied"].index(perm["permission"]),
        )
        if choice != perm["permission"]:
            api_post("/notifications/permission", {"permission": choice})
        st.caption(f"Connected clients: {perm['clients']}")

        if st.button("Check due reminders now"):
            result = api_post("/notifications/check")
            st.success(f"Fired {len(result['fired'])} reminder(s).")

        for toast in api_get("/notifications/toasts"):
            st.toast(f"**{toast['title']}**: {toast['body']}")
    except (ApiError, requests.RequestException) as e:
        st.warning(f"Notifications unavailable: {e}")

# ---------------------------
# UI
# ---------------------------
st.title("Prescription Reminders")

col_left, col_right = st.columns([1.2, 1])

with col_left:
    st.subheader("1) Scan a prescription")

    upload = st.file_uploader("Prescription image", type=["jpg", "jpeg", "png", "webp"])
    if upload is not None and st.button("Extract medicines from image"):
        with st.spinner("Reading prescription..."):
            run_scan(lambda: api_post(
                "/scan",
                files={"file": (upload.name, upload.getvalue(), upload.type or "image/jpeg")},
            ))

    pasted = st.text_area("...or paste prescription text", height=120)
    c1, c2 = st.columns(2)
    with c1:
        if st.button("Parse text") and pasted.strip():
            run_scan(lambda: api_post("/scan/text", {"extracted_text": pasted}))
    with c2:
        label = "Use sample data instead" if st.session_state.sample_offered else "Try sample prescription"
        if st.button(label):
            run_scan(lambda: api_post("/scan/sample"))

with col_right:
    st.subheader("2) Review")
    scan = st.session_state.scan

    if not scan:
        st.caption("Nothing scanned yet.")

    elif scan["status"] == "NEED_MANUAL_ENTRY":
        st.warning(scan.get("message") or "No medicines found.")
        with st.expander("Extracted text"):
            st.text(scan.get("extracted_text") or "")
        manual_df = st.data_editor(
            meds_frame([]),
            num_rows="dynamic",
            use_container_width=True,
            column_config={"frequency": st.column_config.SelectboxColumn(options=FREQUENCY_CHOICES)},
            key="manual_editor",
        )
        if st.button("Continue with these medicines"):
            try:
                st.session_state.scan = api_post(
                    "/scan/manual",
                    {"scan_id": scan["scan_id"], "medicines": frame_to_meds(manual_df)},
                )
                st.rerun()
            except ApiError as e:
                st.error(str(e))

    elif scan["status"] == "NEED_CONFIRMATION":
        st.info(scan.get("message") or "Review the medicines, then confirm.")
        original = scan.get("medicines") or []
        edited_df = st.data_editor(
            meds_frame(original),
            num_rows="fixed",
            use_container_width=True,
            column_config={"frequency": st.column_config.SelectboxColumn(options=FREQUENCY_CHOICES)},
            key=f"confirm_{scan['scan_id']}",
        )
        edited = frame_to_meds(edited_df)
        edits = {
            str(i): med for i, med in enumerate(edited)
            if i < len(original) and med != {**original[i], "notes": original[i].get("notes") or None}
        }
        if st.button("Create reminders"):
            try:
                st.session_state.scan = api_post("/scan/confirm", {"scan_id": scan["scan_id"], "edits": edits})
                st.success(f"Created {len(st.session_state.scan['reminders'])} reminder(s).")
            except ApiError as e:
                st.error(str(e))

    else:
        st.success(f"Created {len(scan.get('reminders') or [])} reminder(s).")
        if st.button("Scan another"):
            st.session_state.scan = None
            st.rerun()

    if scan:
        st.caption(scan.get("safety_note", ""))

# ---------------------------
# Reminders
# ---------------------------
st.divider()
st.subheader("3) Reminders")

try:
    reminders = api_get("/reminders")
except (ApiError, requests.RequestException) as e:
    st.error(str(e))
    reminders = []

if reminders:
    df = pd.DataFrame(reminders)
    df["nextDue"] = pd.to_datetime(df["nextDue"]).dt.tz_convert(datetime.now().astimezone().tzinfo)
    st.dataframe(
        df[["medicineName", "dosage", "frequency", "duration", "nextDue", "notes"]],
        use_container_width=True,
    )

    by_label = {f"{r['medicineName']} ({r['id'][:8]})": r for r in reminders}
    picked = by_label[st.selectbox("Reminder", list(by_label))]

    with st.form("edit_reminder"):
        dosage = st.text_input("Dosage", value=picked["dosage"])
        frequency = st.number_input("Every N hours", min_value=1, value=int(picked["frequency"]))
        duration = st.number_input("Duration (days)", min_value=1, value=int(picked["duration"]))
        notes = st.text_input("Notes", value=picked.get("notes") or "")
        if st.form_submit_button("Save changes"):
            try:
                api_patch(f"/reminders/{picked['id']}", {
                    "dosage": dosage,
                    "frequency": int(frequency),
                    "duration": int(duration),
                    "notes": notes or None,
                })
                st.rerun()
            except ApiError as e:
                st.error(str(e))

    ca, cb, cc = st.columns(3)
    with ca:
        if st.button("Speak"):
            try:
                st.json(api_post(f"/reminders/{picked['id']}/voice"))
            except ApiError as e:
                st.error(str(e))
    with cb:
        if st.button("Delete"):
            api_delete(f"/reminders/{picked['id']}")
            st.rerun()
    with cc:
        if st.button("Delete all reminders"):
            api_delete("/reminders")
            st.rerun()
else:
    st.caption("No reminders yet.")

with st.expander("Add a reminder manually"):
    with st.form("add_reminder"):
        name = st.text_input("Medicine name")
        dosage = st.text_input("Dosage", value="1 unit daily")
        frequency = st.number_input("Every N hours", min_value=1, value=24)
        duration = st.number_input("Duration (days)", min_value=1, value=7)
        notes = st.text_input("Notes")
        if st.form_submit_button("Add reminder"):
            try:
                api_post("/reminders", {
                    "medicineName": name,
                    "dosage": dosage,
                    "frequency": int(frequency),
                    "duration": int(duration),
                    "notes": notes or None,
                })
                st.rerun()
            except ApiError as e:
                st.error(str(e))
