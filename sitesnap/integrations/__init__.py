# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Framework Integrations - FastAPI admin endpoints.
"""

from sitesnap.integrations.fastapi import (
    get_sitesnap_engine,
    register_sitesnap_routes,
    sitesnap_lifespan,
    verify_api_key,
)

__all__ = [
    "sitesnap_lifespan",
    "register_sitesnap_routes",
    "get_sitesnap_engine",
    "verify_api_key",
]
