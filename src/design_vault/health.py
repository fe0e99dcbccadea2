"""
Health checks for Design Vault.

This module checks the configuration, the REST endpoint of the hosted
database and the presence of the media bucket. The API server exposes the
aggregate as GET /api/health; the Streamlit health page renders it.
"""

import asyncio
import json
import os
import platform
import time
from typing import Any

import streamlit as st

from . import __version__
from .config import get_storage_bucket
from .logging_config import get_logger
from .services.supabase import SupabaseAdminClient

logger = get_logger(__name__)

REQUIRED_ENV_VARS = ["SUPABASE_URL", "SUPABASE_SERVICE_ROLE_KEY"]


async def check_database_health(client: SupabaseAdminClient) -> dict[str, Any]:
    """Check that the uploaded files table answers."""
    try:
        await client.ping()
        return {"status": "healthy", "message": "Database connection successful", "timestamp": time.time()}
    except Exception as e:
        logger.error("database_health_check_failed", error=str(e))
        return {"status": "unhealthy", "message": f"Database connection failed: {e}", "timestamp": time.time()}


async def check_storage_health(client: SupabaseAdminClient) -> dict[str, Any]:
    """Check that the media bucket exists."""
    bucket_name = client.bucket
    try:
        buckets = await client.list_buckets()
    except Exception as e:
        logger.error("storage_health_check_failed", error=str(e))
        return {"status": "unhealthy", "message": f"Storage connection failed: {e}", "timestamp": time.time()}

    if bucket_name not in buckets:
        return {
            "status": "unhealthy",
            "message": f"{bucket_name} bucket not found",
            "timestamp": time.time(),
            "bucket": bucket_name,
        }

    return {
        "status": "healthy",
        "message": f"Storage connection successful to bucket: {bucket_name}",
        "timestamp": time.time(),
        "bucket": bucket_name,
    }


def check_environment_health() -> dict[str, Any]:
    """Check environment configuration."""
    missing_vars = [var for var in REQUIRED_ENV_VARS if not os.getenv(var)]
    if missing_vars:
        return {
            "status": "unhealthy",
            "message": f"Missing environment variables: {', '.join(missing_vars)}",
            "timestamp": time.time(),
            "missing_vars": missing_vars,
        }

    return {
        "status": "healthy",
        "message": "Environment configuration is valid",
        "timestamp": time.time(),
        "config": {
            "environment": os.getenv("ENVIRONMENT", "development"),
            "bucket": get_storage_bucket(),
            "tag_generation": "openai" if os.getenv("OPENAI_API_KEY") else "fallback",
        },
    }


def get_application_info(started_at: float | None = None) -> dict[str, Any]:
    now = time.time()
    return {
        "name": "design-vault",
        "version": __version__,
        "environment": os.getenv("ENVIRONMENT", "development"),
        "timestamp": now,
        "uptime": now - (started_at or now),
        "python_version": platform.python_version(),
        "platform": os.name,
    }


async def get_health_status(client: SupabaseAdminClient, started_at: float | None = None) -> dict[str, Any]:
    """Run every check and aggregate the result."""
    logger.info("health_check_started")
    start_time = time.time()

    database, storage = await asyncio.gather(check_database_health(client), check_storage_health(client))
    checks = {
        "database": database,
        "storage": storage,
        "environment": check_environment_health(),
    }

    unhealthy_services = [service for service, result in checks.items() if result["status"] != "healthy"]
    health_response: dict[str, Any] = {
        "status": "unhealthy" if unhealthy_services else "healthy",
        "timestamp": time.time(),
        "duration_ms": round((time.time() - start_time) * 1000, 2),
        "application": get_application_info(started_at),
        "checks": checks,
    }
    if unhealthy_services:
        health_response["unhealthy_services"] = unhealthy_services

    logger.info(
        "health_check_completed",
        status=health_response["status"],
        duration_ms=health_response["duration_ms"],
        unhealthy_services=unhealthy_services,
    )
    return health_response


async def _collect_health() -> dict[str, Any]:
    client = SupabaseAdminClient.from_config()
    try:
        return await get_health_status(client, st.session_state.get("app_start_time"))
    finally:
        await client.aclose()


def render_health_page() -> None:
    """Render the health check page for Streamlit."""
    st.set_page_config(page_title="Health Check - Design Vault", layout="wide")
    st.session_state.setdefault("app_start_time", time.time())

    st.title("Health Check")
    st.markdown("---")

    with st.spinner("Performing health check..."):
        try:
            health_data = asyncio.run(_collect_health())
        except ValueError as e:
            st.error(f"Configuration error: {e}")
            return

    if health_data["status"] == "healthy":
        st.success(f"Application is healthy (checked in {health_data['duration_ms']}ms)")
    else:
        st.error(f"Application is unhealthy (checked in {health_data['duration_ms']}ms)")
        st.warning(f"Unhealthy services: {', '.join(health_data['unhealthy_services'])}")

    app_info = health_data["application"]
    col1, col2, col3 = st.columns(3)
    with col1:
        st.metric("Version", app_info["version"])
    with col2:
        st.metric("Environment", app_info["environment"])
    with col3:
        st.metric("Uptime", f"{app_info['uptime']:.1f}s")

    for service, check_result in health_data["checks"].items():
        with st.expander(f"{service.title()} Service", expanded=check_result["status"] != "healthy"):
            if check_result["status"] == "healthy":
                st.success(check_result["message"])
            else:
                st.error(check_result["message"])
            st.json(check_result)

    with st.expander("Raw Health Data"):
        st.code(json.dumps(health_data, indent=2), language="json")
