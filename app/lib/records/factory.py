from __future__ import annotations

import os
from typing import cast

from app.domain.contracts import RecordCodec
from app.lib.records.codec import CompatPolicy, VersionedRecordCodec

DEFAULT_RECORD_CONTRACT_VERSION = "v1"
DEFAULT_RECORD_COMPAT_POLICY = "strict"


def build_record_codec(
    *,
    active_contract_version: str | None = None,
    compat_policy: str | None = None,
) -> RecordCodec:
    version = active_contract_version or os.getenv("RECORD_CONTRACT_VERSION", DEFAULT_RECORD_CONTRACT_VERSION)
    policy = compat_policy or os.getenv("RECORD_COMPAT_POLICY", DEFAULT_RECORD_COMPAT_POLICY)
    if policy not in ("strict", "compatible"):
        raise ValueError(f"unsupported record compat policy: {policy}")

    return VersionedRecordCodec(
        active_contract_version=version,
        compat_policy=cast(CompatPolicy, policy),
    )
