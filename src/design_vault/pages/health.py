"""
Health check page for the Design Vault Streamlit app.
"""

from design_vault.health import render_health_page

render_health_page()
