"""Secret payloads consumed by the workflow script.

The judge and SDG secrets use different key layouts because the workflow
script reads them through different code paths.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from ilabe2e._constants import OPENSHIFT_ROOT_CA_CONFIGMAP, OPENSHIFT_ROOT_CA_KEY

if TYPE_CHECKING:
    from ilabe2e.config import ObjectStoreConfig, ServingModelConfig


def object_store_secret_data(store: ObjectStoreConfig) -> dict[str, str]:
    """Keys referenced one by one from the workbench pod's env."""
    return {
        "bucket": store.bucket,
        "access_key": store.access_key,
        "secret_key": store.secret_key,
        "data_key": store.data_key,
        "endpoint": store.endpoint,
        "region": store.region,
        "verify_tls": store.verify_tls,
    }


def _with_openshift_ca(data: dict[str, str], prefix: str, enabled: bool) -> dict[str, str]:
    # Reference the cluster root CA ConfigMap instead of inlining cert data
    if enabled:
        data[f"{prefix}_CA_CERT"] = OPENSHIFT_ROOT_CA_CONFIGMAP
        data[f"{prefix}_CA_CERT_CM_KEY"] = OPENSHIFT_ROOT_CA_KEY
    return data


def judge_secret_data(judge: ServingModelConfig) -> dict[str, str]:
    """Judge model credentials, keyed by their environment variable names."""
    data = {
        "JUDGE_API_KEY": judge.api_key,
        "JUDGE_ENDPOINT": judge.endpoint,
        "JUDGE_NAME": judge.name,
    }
    return _with_openshift_ca(data, "JUDGE", judge.ca_cert_from_openshift)


def sdg_secret_data(sdg: ServingModelConfig) -> dict[str, str]:
    """SDG serving model credentials."""
    data = {
        "api_key": sdg.api_key,
        "endpoint": sdg.endpoint,
        "model": sdg.name,
    }
    return _with_openshift_ca(data, "SDG", sdg.ca_cert_from_openshift)
