"""
Kubernetes ConfigMap record store.

Each record is stored as one ConfigMap in the configured namespace, labelled
with its table name, with the record serialized as JSON under a single data
key. Kubernetes provides the primitives the namespace manager needs:

- create returns 409 when the ConfigMap already exists
- replace guarded by ``resourceVersion`` returns 409 when it changed
- list supports ``limit`` and ``continue`` for paginated scans
"""

import asyncio
import hashlib
import logging
from typing import Any

from kubernetes import client
from kubernetes.client.rest import ApiException

from ..constants import (
    MODIFY_MAX_ATTEMPTS,
    STORE_LABEL_MANAGED_BY,
    STORE_LABEL_MANAGED_BY_VALUE,
    STORE_LABEL_TABLE,
    STORE_RECORD_KEY,
)
from ..errors import (
    EntityAlreadyExistsError,
    EntityNotFoundError,
    ModifyConflictError,
    StoreError,
)
from .base import Condition, Mutator, RecordStore, ScanPage, T

logger = logging.getLogger(__name__)

KEY_ANNOTATION = "namespace-manager.io/key"


class KubernetesStore(RecordStore[T]):
    """Record store backed by ConfigMaps."""

    def __init__(
        self,
        model: type[T],
        table_name: str,
        namespace: str,
        k8s_client: client.ApiClient | None = None,
    ):
        """
        Initialize the store.

        Args:
            model: Pydantic model of the records
            table_name: Label value separating this table from others
            namespace: Kubernetes namespace holding the ConfigMaps
            k8s_client: Optional Kubernetes API client
        """
        super().__init__(model, table_name)
        self.namespace = namespace
        self.k8s_client = k8s_client
        self._v1: client.CoreV1Api | None = None

    @property
    def v1(self) -> client.CoreV1Api:
        """Get CoreV1Api client."""
        if self._v1 is None:
            if self.k8s_client:
                self._v1 = client.CoreV1Api(self.k8s_client)
            else:
                self._v1 = client.CoreV1Api()
        return self._v1

    @property
    def label_selector(self) -> str:
        return f"{STORE_LABEL_TABLE}={self.table_name}"

    def config_map_name(self, key: str) -> str:
        """ConfigMap name for a key; keys may contain characters DNS names cannot."""
        digest = hashlib.sha256(key.encode()).hexdigest()[:20]
        return f"{self.table_name}-{digest}"

    def _body(self, record: T, resource_version: str | None = None) -> dict[str, Any]:
        metadata: dict[str, Any] = {
            "name": self.config_map_name(record.key),
            "namespace": self.namespace,
            "labels": {
                STORE_LABEL_MANAGED_BY: STORE_LABEL_MANAGED_BY_VALUE,
                STORE_LABEL_TABLE: self.table_name,
            },
            "annotations": {KEY_ANNOTATION: record.key},
        }
        if resource_version:
            metadata["resourceVersion"] = resource_version
        return {
            "metadata": metadata,
            "data": {STORE_RECORD_KEY: record.model_dump_json()},
        }

    def _record(self, config_map: client.V1ConfigMap) -> T:
        raw = (config_map.data or {}).get(STORE_RECORD_KEY)
        if raw is None:
            raise StoreError(
                f"ConfigMap {self.namespace}/{config_map.metadata.name} has no record"
            )
        record = self.model.model_validate_json(raw)
        record.etag = config_map.metadata.resource_version
        return record

    def _wrap(self, action: str, key: str, e: ApiException) -> StoreError:
        return StoreError(
            f"Failed to {action} record '{key}' in {self.table_name}: {e.reason}",
            retryable=e.status is None or e.status >= 500,
            cause=e,
        )

    async def create(self, record: T) -> T:
        try:
            config_map = await asyncio.to_thread(
                self.v1.create_namespaced_config_map,
                namespace=self.namespace,
                body=self._body(record),
            )
        except ApiException as e:
            if e.status == 409:
                raise EntityAlreadyExistsError(record.key) from e
            raise self._wrap("create", record.key, e) from e

        logger.debug(f"Created record '{record.key}' in {self.table_name}")
        return self._record(config_map)

    async def load(self, key: str) -> T | None:
        try:
            config_map = await asyncio.to_thread(
                self.v1.read_namespaced_config_map,
                name=self.config_map_name(key),
                namespace=self.namespace,
            )
        except ApiException as e:
            if e.status == 404:
                return None
            raise self._wrap("load", key, e) from e
        return self._record(config_map)

    async def scan(
        self,
        condition: Condition | None = None,
        page_size: int = 250,
        continuation: str | None = None,
    ) -> ScanPage[T]:
        kwargs: dict[str, Any] = {
            "namespace": self.namespace,
            "label_selector": self.label_selector,
            "limit": page_size,
        }
        if continuation:
            kwargs["_continue"] = continuation

        try:
            result = await asyncio.to_thread(
                self.v1.list_namespaced_config_map, **kwargs
            )
        except ApiException as e:
            raise StoreError(
                f"Failed to scan {self.table_name}: {e.reason}", cause=e
            ) from e

        entries = [self._record(item) for item in result.items]
        if condition is not None:
            entries = [entry for entry in entries if condition(entry)]
        next_token = getattr(result.metadata, "_continue", None) or None
        return ScanPage(entries=entries, continuation=next_token)

    async def modify(self, key: str, mutator: Mutator) -> T:
        for attempt in range(1, MODIFY_MAX_ATTEMPTS + 1):
            current = await self.load(key)
            if current is None:
                raise EntityNotFoundError(key)

            working = current.model_copy(deep=True)
            mutator(working)
            if working.model_dump() == current.model_dump():
                return current

            try:
                config_map = await asyncio.to_thread(
                    self.v1.replace_namespaced_config_map,
                    name=self.config_map_name(key),
                    namespace=self.namespace,
                    body=self._body(working, resource_version=current.etag),
                )
            except ApiException as e:
                if e.status == 409:
                    logger.debug(
                        f"Record '{key}' changed concurrently, retrying "
                        f"(attempt {attempt}/{MODIFY_MAX_ATTEMPTS})"
                    )
                    continue
                if e.status == 404:
                    raise EntityNotFoundError(key) from e
                raise self._wrap("modify", key, e) from e
            return self._record(config_map)

        raise ModifyConflictError(key, MODIFY_MAX_ATTEMPTS)

    async def remove(self, key: str) -> bool:
        try:
            await asyncio.to_thread(
                self.v1.delete_namespaced_config_map,
                name=self.config_map_name(key),
                namespace=self.namespace,
            )
        except ApiException as e:
            if e.status == 404:
                return False
            raise self._wrap("remove", key, e) from e

        logger.debug(f"Removed record '{key}' from {self.table_name}")
        return True
