import streamlit as st

# === COLOR PALETTE ===
PRIMARY_COLOR    = "#1DB954"
DANGER_COLOR     = "#ef4444"
WARNING_COLOR    = "#ca8a04"
SUBTLE_TEXT      = "#B3B3B3"

DARK_BACKGROUND  = "#000000"
DARK_CARD        = "#191414"
DARK_TEXT        = "#ffffff"

LIGHT_BACKGROUND = "#f8fafc"
LIGHT_CARD       = "#ffffff"
LIGHT_TEXT       = "#0f172a"

AVATARS = ["🥕", "🐼", "🦊", "🐱", "🐶", "🐸", "🦁", "🐵", "🐧", "🦄", "🍀", "🌻"]


def palette(dark_mode: bool) -> dict:
    if dark_mode:
        return {"bg": DARK_BACKGROUND, "card": DARK_CARD, "text": DARK_TEXT}
    return {"bg": LIGHT_BACKGROUND, "card": LIGHT_CARD, "text": LIGHT_TEXT}


def apply_css(dark_mode: bool = True):
    """Inject the page theme for the current dark/light preference."""
    colors = palette(dark_mode)
    st.markdown(f"""
        <style>
        .stApp {{ background-color: {colors['bg']}; color: {colors['text']}; }}
        h1,h2,h3,h4,h5,h6,p,label {{ color: {colors['text']}; }}
        .savvi-card {{
            background: {colors['card']}; padding: 1.1rem; border-radius: 14px; margin: .6rem 0;
            border: 1px solid rgba(128,128,128,0.2);
        }}
        .savvi-balance {{
            background: linear-gradient(90deg, {PRIMARY_COLOR}, {PRIMARY_COLOR}e6);
            padding: 1.4rem; border-radius: 16px; color: #ffffff; margin-bottom: 1rem;
        }}
        .savvi-balance h2 {{ color: #ffffff; margin: 0; font-size: 2rem; }}
        .savvi-offline-banner {{
            background: {WARNING_COLOR}; color: #000000; padding: .5rem 1rem; border-radius: 8px;
            text-align: center; font-weight: 500; margin-bottom: 1rem;
        }}
        .savvi-muted {{ color: {SUBTLE_TEXT}; font-size: .9rem; }}
        .stButton button {{
            background: {PRIMARY_COLOR}; color: white; border: none; border-radius: 10px; font-weight: 600;
        }}
        .stButton button:disabled {{ background: #ced4da; color: #6c757d; cursor: not-allowed; opacity: 0.65; }}
        </style>
    """, unsafe_allow_html=True)


def balance_card(title: str, amount_text: str, subtitle: str = ""):
    st.markdown(
        f"""
        <div class="savvi-balance">
            <p style="margin:0;color:#ffffffcc;">{title}</p>
            <h2>{amount_text}</h2>
            <p style="margin:0;color:#ffffffcc;">{subtitle}</p>
        </div>
        """,
        unsafe_allow_html=True,
    )


def offline_banner(text: str = "📡 Offline Mode - Limited functionality"):
    st.markdown(f'<div class="savvi-offline-banner">{text}</div>', unsafe_allow_html=True)
