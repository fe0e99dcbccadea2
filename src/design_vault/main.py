"""
Main Streamlit application for Design Vault.

This is the entry point for the design asset gallery.
"""

import streamlit as st

from design_vault.config import get_config
from design_vault.logging_config import configure_structured_logging, get_logger
from design_vault.ui.handlers.error import create_user_friendly_message
from design_vault.ui.pages.gallery import render_gallery_page

# Configure structured logging
configure_structured_logging()
logger = get_logger(__name__)


def main() -> None:
    """Main application entry point."""
    logger.info("application_starting", page="gallery")

    st.set_page_config(
        page_title="Design Vault",
        page_icon="🎨",
        layout="wide",
        initial_sidebar_state="expanded",
        menu_items={
            "Get Help": None,
            "Report a bug": None,
            "About": "Design Vault - Design asset gallery",
        },
    )

    try:
        render_gallery_page()

        # Debug info (only in development)
        if get_config().get("DEBUG", False, bool):
            with st.expander("Debug Info"):
                st.write("Session State:", st.session_state)

    except Exception as e:
        logger.error("critical_application_error", error=str(e))
        st.error(create_user_friendly_message(e))
        if st.button("🔄 Reload", type="primary"):
            st.rerun()


if __name__ == "__main__":
    main()
