# tests/integration/conftest.py — v1
"""Shared fixtures for integration tests.

Scenario tests run the whole engine on the scripted runtime and need no
external services. Docker- and Elasticsearch-backed tests use
testcontainers and are skipped when no Docker daemon is reachable.

Container lifecycle:
- session scope: the Elasticsearch container starts once per session
- function scope: fresh index name per test for isolation

Containers are reached through their bridge network IP and internal
port, which also works from inside a devcontainer talking to the host
daemon through a mounted socket.
"""

from __future__ import annotations

import logging
import time
import uuid

import pytest

logger = logging.getLogger(__name__)

ES_IMAGE = "docker.elastic.co/elasticsearch/elasticsearch:8.13.4"
ES_INTERNAL_PORT = 9200
BUSYBOX_IMAGE = "busybox:1.36"


def _get_container_bridge_ip(container, max_attempts: int = 10) -> str:
    """Get container bridge network IP with retries."""
    for attempt in range(max_attempts):
        wrapped = container.get_wrapped_container()
        wrapped.reload()
        networks = wrapped.attrs.get("NetworkSettings", {}).get("Networks", {})
        for net_name, net_info in networks.items():
            ip = net_info.get("IPAddress", "")
            if ip:
                logger.info(
                    "Container %s IP: %s (network: %s, attempt %d)",
                    wrapped.short_id, ip, net_name, attempt + 1,
                )
                return ip
        logger.debug("Container IP empty, attempt %d/%d", attempt + 1, max_attempts)
        time.sleep(0.5)

    raise RuntimeError(
        f"Could not obtain container bridge IP after {max_attempts} attempts"
    )


def _docker_available() -> bool:
    """Check if Docker daemon is reachable."""
    try:
        import docker

        client = docker.from_env()
        client.ping()
        return True
    except Exception:
        return False


skip_no_docker = pytest.mark.skipif(
    not _docker_available(),
    reason="Docker daemon not available",
)


# =====================================================================
#  DOCKER RUNTIME
# =====================================================================


@pytest.fixture(scope="session")
def busybox_image() -> str:
    if not _docker_available():
        pytest.skip("Docker not available")
    import docker

    client = docker.from_env()
    try:
        client.images.pull(BUSYBOX_IMAGE)
    finally:
        client.close()
    return BUSYBOX_IMAGE


# =====================================================================
#  ELASTICSEARCH
# =====================================================================


@pytest.fixture(scope="session")
def elasticsearch_container():
    if not _docker_available():
        pytest.skip("Docker not available")

    from testcontainers.core.container import DockerContainer
    from testcontainers.core.waiting_utils import wait_for_logs

    container = (
        DockerContainer(ES_IMAGE)
        .with_exposed_ports(ES_INTERNAL_PORT)
        .with_env("discovery.type", "single-node")
        .with_env("xpack.security.enabled", "false")
        .with_env("ES_JAVA_OPTS", "-Xms512m -Xmx512m")
    )
    container.start()
    wait_for_logs(container, predicate=r'"message":\s?"started', timeout=180)

    ip = _get_container_bridge_ip(container)
    logger.info("Elasticsearch ready at %s:%d", ip, ES_INTERNAL_PORT)
    yield {"host": ip, "port": ES_INTERNAL_PORT}
    container.stop()


@pytest.fixture(scope="session")
def elasticsearch_url(elasticsearch_container) -> str:
    c = elasticsearch_container
    return f"http://{c['host']}:{c['port']}"


@pytest.fixture
def es_index(elasticsearch_url):
    from adacta.index.elasticsearch_index import ElasticsearchIndex

    index = ElasticsearchIndex(
        elasticsearch_url, index=f"adacta_test_{uuid.uuid4().hex[:8]}", refresh=True
    )
    yield index
    index._client.options(ignore_status=404).indices.delete(index=index._index)
    index._client.close()
