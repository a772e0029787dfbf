"""
DermaSight — Streamlit Client
=============================
Photograph or upload a skin lesion, send it to the analysis proxy, and
browse your scan history. Doctors additionally get a dashboard over all
patients' scans.

Usage
-----
    dermasight-proxy &            # analysis proxy on :8000
    streamlit run streamlit_app.py
"""

from __future__ import annotations

import uuid
from datetime import datetime

import streamlit as st

from dermasight.app import config
from dermasight.app.analysis import AnalyzeGuard, ProxyClient, analyze_image
from dermasight.app.chatbot import greeting, send
from dermasight.app.errors import DermaSightError, NoPredictions
from dermasight.app.history import (
    FILTERS,
    condition_counts,
    dashboard_stats,
    filter_scans,
    recent_scans,
    scans_to_frame,
)
from dermasight.app.schemas import AnalysisResult, ProfileUpdate
from dermasight.app.services import ProfileRepository, ScanRepository, init_db
from dermasight.app.session import (
    Identity,
    identity_from_claims,
    SessionManager,
    UserSession,
    can_view_dashboard,
    nav_items,
    role_label,
)
from dermasight.utils.html_utils import chat_bubble_html, result_banner_html
from dermasight.utils.image_utils import from_data_url, to_data_url, validate_image

# ─────────────────────────────────────────────────────────────────
# Constants
# ─────────────────────────────────────────────────────────────────
APP_VERSION = "1.0.0"
_DATE_FMT = "%b %d, %Y"

# ─────────────────────────────────────────────────────────────────
# Page config — MUST be the first Streamlit command
# ─────────────────────────────────────────────────────────────────
st.set_page_config(
    page_title="DermaSight  |  AI Skin Analysis",
    page_icon="🩺",
    layout="wide",
    initial_sidebar_state="expanded",
)

st.markdown(
    """
    <style>
    :root {
        --primary: #0EA5E9;
        --danger: #EF4444;
        --success: #10B981;
        --border: #E2E8F0;
        --text-secondary: #64748B;
        --radius: 12px;
    }
    .block-container { padding-top: 2rem !important; max-width: 1200px !important; }
    section[data-testid="stSidebar"] {
        background: linear-gradient(180deg, #0F172A 0%, #1E293B 100%) !important;
    }
    section[data-testid="stSidebar"] * { color: #E2E8F0 !important; }
    .section-header { font-size: 1.1rem; font-weight: 700; margin-bottom: 0.4rem; }
    .section-caption { font-size: 0.82rem; color: var(--text-secondary); margin-bottom: 1.2rem; }
    .result-banner {
        display: flex; align-items: center; gap: 16px;
        padding: 20px 28px; border-radius: var(--radius);
        font-weight: 600; margin-bottom: 0.8rem;
    }
    .result-high { background: #FEE2E2; border: 1px solid #FECACA; color: #991B1B; }
    .result-normal { background: #DCFCE7; border: 1px solid #BBF7D0; color: #166534; }
    .result-icon { font-size: 2rem; }
    .result-label { font-size: 1.25rem; font-weight: 700; }
    .chat-user { text-align: right; margin: 4px 0; }
    .chat-bot { text-align: left; margin: 4px 0; }
    .chat-bubble {
        display: inline-block; max-width: 80%; padding: 8px 14px;
        border-radius: 16px; border: 1px solid var(--border); font-size: 0.9rem;
    }
    .chat-user .chat-bubble { background: var(--primary); color: #fff; }
    .app-footer {
        text-align: center; padding: 2rem 0 1rem 0; margin-top: 3rem;
        border-top: 1px solid var(--border); font-size: 0.78rem; color: #94A3B8;
    }
    </style>
    """,
    unsafe_allow_html=True,
)


# ─────────────────────────────────────────────────────────────────
# Cached resources
# ─────────────────────────────────────────────────────────────────
@st.cache_resource(show_spinner=False)
def load_services():
    config.configure_logging()
    init_db()
    return ScanRepository(), ProfileRepository(), ProxyClient()


scan_repo, profile_repo, proxy = load_services()

if "session_manager" not in st.session_state:
    st.session_state["session_manager"] = SessionManager(profile_repo)

manager: SessionManager = st.session_state["session_manager"]


def _section(title: str, caption: str = "") -> None:
    html = f'<div class="section-header">{title}</div>'
    if caption:
        html += f'<div class="section-caption">{caption}</div>'
    st.markdown(html, unsafe_allow_html=True)


def _scan_image(image_url: str):
    """Stored images are embedded data URLs or plain remote URIs."""
    if image_url.startswith("data:"):
        try:
            return from_data_url(image_url)
        except DermaSightError:
            return None
    return image_url


def _result_banner(result: AnalysisResult) -> None:
    st.markdown(result_banner_html(result), unsafe_allow_html=True)


# ─────────────────────────────────────────────────────────────────
# Screens — each receives the explicit session
# ─────────────────────────────────────────────────────────────────
def _sign_in(identity: Identity) -> None:
    try:
        manager.sign_in(identity)
    except DermaSightError as exc:
        st.error(f"Sign-in failed: {exc}")
        return
    st.rerun()


def render_sign_in() -> None:
    _section(
        "Sign in to DermaSight",
        "Your identity is provided by the hosted sign-in service; new "
        "accounts start as patients.",
    )
    if st.user.is_logged_in:
        identity = identity_from_claims(st.user)
        if identity is None:
            st.error("The sign-in service did not provide an email address.")
            st.button("Sign Out", on_click=st.logout)
            return
        _sign_in(identity)
        return

    st.button("Sign In", type="primary", use_container_width=True, on_click=st.login)
    if not config.DEV_SIGN_IN:
        return

    st.divider()
    st.caption("Development sign-in: patient accounts only.")
    with st.form("dev_sign_in"):
        email = st.text_input("Email")
        full_name = st.text_input("Full name (new accounts)")
        submitted = st.form_submit_button("Sign In (development)", use_container_width=True)
    if submitted:
        if not email.strip():
            st.error("Please enter your email.")
            return
        user_id = str(uuid.uuid5(uuid.NAMESPACE_URL, f"mailto:{email.strip().lower()}"))
        _sign_in(Identity(user_id=user_id, email=email.strip(), full_name=full_name.strip(), verified=False))


def render_home(session: UserSession) -> None:
    profile = profile_repo.get(session.user_id)
    name = profile.full_name if profile else session.email
    _section(
        f"Welcome back, {name}",
        "Take a clear photo of a skin concern and get an AI-powered analysis in seconds.",
    )
    col1, col2, col3 = st.columns(3)
    col1.metric("Your Scans", scan_repo.count_by_user(session.user_id))
    col2.metric("Role", role_label(session.role))
    col3.metric("Model", config.AUTODERM_MODEL)

    with st.expander("ℹ️  How it works", expanded=True):
        st.markdown("""
| Step | Description |
|------|-------------|
| **1. Upload** | Choose or take a clear photo (PNG/JPG, up to 10 MB) |
| **2. Analyze** | The image is classified by Autoderm AI |
| **3. Results** | See the most likely condition, confidence, and advice |
| **4. History** | Every result is saved to your scan history |
        """)


def render_upload(session: UserSession) -> None:
    _section(
        "Upload Skin Image",
        "Take or upload a clear photo of your skin concern for AI analysis.",
    )
    guard = AnalyzeGuard(st.session_state)

    source = st.radio("Source", ["Choose File", "Take Photo"], horizontal=True)
    if source == "Take Photo":
        uploaded = st.camera_input("Take a photo")
    else:
        uploaded = st.file_uploader("PNG, JPG up to 10MB", type=["png", "jpg", "jpeg", "webp"])

    if uploaded is None:
        st.info("💡 Tip: For best results, ensure good lighting and capture the affected area clearly.")
        return

    image_bytes = uploaded.getvalue()
    try:
        mime = validate_image(image_bytes)
    except DermaSightError as exc:
        st.error(str(exc))
        return

    st.image(image_bytes, use_container_width=True)

    error = st.session_state.pop("analysis_error", None)
    if error:
        st.error(error)

    st.button(
        "Analyze Image",
        disabled=guard.busy,
        on_click=guard.request,
        use_container_width=True,
        type="primary",
    )
    if not guard.requested:
        return

    image_url = to_data_url(image_bytes, mime)
    try:
        with st.spinner("Analyzing …"):
            outcome = analyze_image(session, image_url, proxy, scan_repo, guard=guard)
    except NoPredictions as exc:
        st.session_state["analysis_error"] = str(exc)
        st.rerun()
    except DermaSightError as exc:
        st.session_state["analysis_error"] = str(exc) or "Failed to analyze image"
        st.rerun()

    if not outcome.saved:
        st.toast("Result could not be saved to your history.", icon="⚠️")
    st.session_state["last_result"] = outcome.result
    st.session_state["chat"] = [greeting()]
    st.session_state["page"] = "Results"
    st.rerun()


def render_results(session: UserSession) -> None:
    result: AnalysisResult | None = st.session_state.get("last_result")
    if result is None:
        st.session_state["page"] = "Upload"
        st.rerun()
        return

    _section("Analysis Results", "AI-powered skin condition analysis.")
    col1, col2 = st.columns(2, gap="large")
    with col1:
        st.image(from_data_url(result.image_url), use_container_width=True)
        st.caption("📸 Image captured and analyzed · 🤖 Processed by Autoderm AI v2.2")
    with col2:
        _result_banner(result)
        _section("AI Recommendation")
        st.write(result.recommendation)

    st.write("")
    _section("DermaBot - Ask Me Anything")
    history = st.session_state.setdefault("chat", [greeting()])
    for msg in history:
        st.markdown(
            chat_bubble_html(msg),
            unsafe_allow_html=True,
        )
    question = st.chat_input("Ask about your results...")
    if question:
        st.session_state["chat"] = send(result.disease_name, history, question)
        st.rerun()
    st.caption("DermaBot provides general information only. Always consult a healthcare professional.")


def render_history(session: UserSession) -> None:
    _section("Scan History", "View and track your previous skin analyses.")
    try:
        scans = scan_repo.list_by_user(session.user_id)
    except DermaSightError as exc:
        st.error(str(exc))
        return

    fc1, fc2 = st.columns([2, 1])
    with fc1:
        risk_filter = st.selectbox(
            "Filter scans", options=list(FILTERS), format_func=FILTERS.get
        )
    filtered = filter_scans(scans, risk_filter)
    fc2.metric("Scans", len(filtered))

    if not filtered:
        st.info("No scans found. Upload your first scan to get started.")
        return

    cols = st.columns(3)
    for idx, scan in enumerate(filtered):
        with cols[idx % 3]:
            image = _scan_image(scan.image_url)
            if image is not None:
                st.image(image, use_container_width=True)
            badge = "🔴 High" if scan.is_high_risk else "🟢"
            st.markdown(f"**{scan.disease_name}** &nbsp; {badge} {scan.confidence}% Confidence")
            st.caption(scan.recommendation)
            st.caption(f"📅 {scan.created_at.strftime(_DATE_FMT)}")

    st.download_button(
        "⬇ CSV",
        data=scans_to_frame(filtered).to_csv(index=False).encode("utf-8"),
        file_name="scan_history.csv",
        mime="text/csv",
    )


def render_dashboard(session: UserSession) -> None:
    if not can_view_dashboard(session.role):
        st.session_state["page"] = "Home"
        st.rerun()
        return

    _section("Doctor Dashboard", "Overview of patient scans and high-risk cases.")
    try:
        scans = scan_repo.list_all()
    except DermaSightError as exc:
        st.error(str(exc))
        return

    stats = dashboard_stats(scans)
    mc1, mc2, mc3 = st.columns(3)
    mc1.metric("Total Scans", stats.total_scans)
    mc2.metric("High-Risk Cases", stats.high_risk_cases)
    mc3.metric("Patients Scanned", stats.patients_scanned)

    _section("Recent Patient Scans")
    if not scans:
        st.info("No scans available")
        return
    st.dataframe(
        scans_to_frame(recent_scans(scans)),
        use_container_width=True,
        hide_index=True,
        column_config={
            "Date": st.column_config.DatetimeColumn(format="MMM DD, YYYY"),
            "Confidence": st.column_config.NumberColumn(format="%d%%"),
        },
    )

    _section("Condition Distribution")
    st.bar_chart(condition_counts(scans).set_index("Condition"), height=250, color=["#0EA5E9"])


def render_profile(session: UserSession) -> None:
    _section("My Profile", "Manage your account settings and information.")
    profile = profile_repo.get(session.user_id)
    if profile is None:
        st.error("Profile not found.")
        return

    st.markdown(f"### {profile.full_name or 'User'}")
    st.caption(role_label(profile.role))
    st.write(f"✉️ {profile.email}")
    st.write(f"📅 Member since {profile.created_at.strftime(_DATE_FMT)}")

    with st.form("edit_profile"):
        full_name = st.text_input("Full Name", value=profile.full_name)
        if st.form_submit_button("Save Changes"):
            try:
                profile_repo.update(session.user_id, ProfileUpdate(full_name=full_name))
            except (DermaSightError, ValueError) as exc:
                st.error(f"Failed to update profile: {exc}")
            else:
                st.toast("Profile updated successfully", icon="✅")
                st.rerun()

    _section("Activity Stats")
    st.metric("Total Scans", scan_repo.count_by_user(session.user_id))

    if st.button("Sign Out", type="primary", use_container_width=True):
        manager.sign_out()
        st.session_state.pop("last_result", None)
        st.session_state.pop("chat", None)
        st.session_state.pop("page", None)
        if st.user.is_logged_in:
            st.logout()
        st.rerun()


def render_about(session: UserSession) -> None:
    _section("About DermaSight")
    st.markdown(
        "DermaSight sends your photo to **Autoderm AI**, a dermatology image "
        "classifier, and keeps a private history of the results. A confidence "
        "above **70%** is flagged as high-risk.\n\n"
        "DermaSight is for information only and does not replace a "
        "dermatologist's diagnosis."
    )


SCREENS = {
    "Home": render_home,
    "Upload": render_upload,
    "Results": render_results,
    "History": render_history,
    "Dashboard": render_dashboard,
    "Profile": render_profile,
    "About": render_about,
}


# ─────────────────────────────────────────────────────────────────
# Sidebar + routing
# ─────────────────────────────────────────────────────────────────
def _navigate() -> None:
    st.session_state["page"] = st.session_state["nav"]


with st.sidebar:
    st.markdown("# 🩺 DermaSight")
    st.caption("AI Skin Analysis")
    st.divider()

    session = manager.current
    if session is not None:
        st.radio(
            "Navigate",
            nav_items(session.role),
            key="nav",
            on_change=_navigate,
            label_visibility="collapsed",
        )
        st.divider()
        st.caption(f"Signed in as {session.email} · {role_label(session.role)}")

    st.markdown("<br/>" * 2, unsafe_allow_html=True)
    st.caption(f"v{APP_VERSION} · proxy {config.PROXY_URL}")

session = manager.current
if session is None:
    render_sign_in()
else:
    SCREENS[st.session_state.get("page", "Home")](session)


# ─────────────────────────────────────────────────────────────────
# Footer
# ─────────────────────────────────────────────────────────────────
st.markdown(
    f"""
    <div class="app-footer">
        <strong>DermaSight</strong> v{APP_VERSION} &nbsp;·&nbsp;
        For informational purposes only &nbsp;·&nbsp; Not for clinical diagnosis<br/>
        Built with Streamlit · FastAPI · SQLAlchemy &nbsp;·&nbsp;
        &copy; {datetime.now().year} DermaSight
    </div>
    """,
    unsafe_allow_html=True,
)
