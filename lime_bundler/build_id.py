"""Build identifier derivation.

The identifier is computed once by the caller and threaded through
``BundlerConfig.build_id`` and ``BundleResult.build_id``; nothing here keeps
module-level state.
"""

from __future__ import annotations

import hashlib
import os
import uuid
from typing import Mapping, Optional

DEPLOYMENT_ENV_VARS = ("DENO_DEPLOYMENT_ID", "GITHUB_SHA")


def compute_build_id(env: Optional[Mapping[str, str]] = None) -> str:
    """Hash the first deployment id found in ``env``, else a random UUID4."""

    source = os.environ if env is None else env
    deployment_id = next((source[name] for name in DEPLOYMENT_ENV_VARS if source.get(name)), None)
    if deployment_id is None:
        deployment_id = str(uuid.uuid4())
    return hashlib.sha1(deployment_id.encode("utf-8")).hexdigest()
