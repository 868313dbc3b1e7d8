from __future__ import annotations

# Source checkout (shallow clone of one tag)
CHECKOUT_TIMEOUT_SECONDS = 10 * 60.0

# Toolchain install / override
TOOLCHAIN_TIMEOUT_SECONDS = 15 * 60.0

# Release-mode compile
BUILD_TIMEOUT_SECONDS = 60 * 60.0

# One asset upload request
UPLOAD_TIMEOUT_SECONDS = 10 * 60.0

# Registry packaging + upload
REGISTRY_TIMEOUT_SECONDS = 20 * 60.0
